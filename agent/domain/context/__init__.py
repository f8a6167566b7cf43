# This module assembles the context for each model step
#
# +----------------------+      +----------------------+
# |   Documentation      |      |   State              |   (per session, persisted)
# |----------------------|      |----------------------|
# | Percify catalog      |      | Avatar profile       |
# | Keyword matcher      |      | Memory log (<= 50)   |
# +----------------------+      +----------------------+
#            |                             |
#            | researchWeb                 | last 3 memories
#            v                             v
# +-----------------------------------------------------+
# |                System prompt                        |   (rebuilt every step)
# |-----------------------------------------------------|
# | Behavioural instructions + tone directive           |
# | Schedule fragment (current time, how to schedule)   |
# | Avatar block + recent memories                      |
# +-----------------------------------------------------+
#            |
#            v
#   [model step / tool call]
