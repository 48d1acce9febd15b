# Context assembly for planning and actions

# +---------------------+
# |      Memory         |   (Persistent, per agent, TTL-bound)
# |---------------------|
# | Knowledge           |
# | Action plan         |
# | Relations + history |
# +---------------------+

# +---------------------+
# |     Directory       |   (Team-owned, shared)
# |---------------------|
# | Profiles, roles     |
# | Idea board          |
# | Team chat           |
# +---------------------+

#    \    /
#     \  /
#      \/
# +------------------------------+
# |       PlanningContext        |   (Assembled per plan cycle)
# |------------------------------|
# | Roles, teammates, topic      |
# | Existing ideas, recent chat  |
# | Knowledge, strategies        |
# +------------------------------+
#         |
#         v
#   [decision oracle -> role gate]
