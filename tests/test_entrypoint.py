"""Tests for the server entrypoint."""

from unittest.mock import patch

import entrypoint


def test_main_runs_uvicorn_with_configured_address():
    with patch("entrypoint.uvicorn.run") as run, patch("entrypoint.setup_logging") as setup:
        entrypoint.main()

    setup.assert_called_once_with(log_level=entrypoint.LOG_LEVEL, log_file=entrypoint.LOG_FILE)
    run.assert_called_once_with(
        "app:app", host=entrypoint.HOST, port=entrypoint.PORT, reload=entrypoint.RELOAD, log_config=None
    )
