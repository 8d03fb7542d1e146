# This module handles what an agent knows and how it is rendered for the LLM

# +---------------------+
# |   Working memory    |   (Recency buffer, 20 items, 10 minutes)
# |---------------------|
# | Important or recent |
# | observations        |
# +---------------------+

# +---------------------+
# |   Episodic memory   |   (Chronological log, bounded, indexed by type)
# |---------------------|
# | Everything stored   |
# | Consolidated daily  |
# +---------------------+

# +---------------------+
# |   Semantic memory   |   (Durable facts)
# |---------------------|
# | Facts by key        |
# | Relationships 0-100 |
# | Strategy ratings    |
# +---------------------+

#    \    /
#     \  /
#      \/
# +------------------------------+
# |      Planning context        |   (Assembled every planning cycle)
# |------------------------------|
# | Status (position, vitals)    |
# | Nearby entities (5)          |
# | Recent memories (5)          |
# | Current goals                |
# | Response format              |
# +------------------------------+
#         |
#         v
#   [LLM -> THOUGHT / GOAL / PRIORITY / TASKS]
