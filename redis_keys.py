ROOM_KEY = "room:{room_id}" # room id - full room document (JSON)
NAMESPACED_KEY = "{namespace}:{key}" # physical key inside a shared Redis database

# **Room document fields**
# - `id`, `name`, `method`, `createdBy`, `createdByName` = metadata
# - `snapshot` = host document blob, stored verbatim
# - `userBranches` = {userId: {snapshot, lastUpdated, userName}}
# - `activeUsers` = [{id, name, color, region, joinedAt, isHost}] in join order
# - `operations` = append-only log, trimmed to the newest entries
# - `lastUpdated` = ms since epoch
