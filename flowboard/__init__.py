# flowboard: brain-dump capture onto a kanban-style board
#
# Components:
#   schema.py       - Data model (FlowItem, ItemType, ItemStatus, Priority, RealityCheck)
#   store.py        - Ordered per-principal item collection, write-through persistence
#   board.py        - Board columns, offered moves and status projections
#   analyzer.py     - Brain dump → classifier → FlowItems, reality check
#   classifier.py   - Gemini and rule-based classification collaborators
#   quest.py        - Random quest picker (someday → today)
#   achievements.py - Badges, coaching message, board statistics
#   persistence.py  - Storage adapters (memory, JSON files, SQLite)
#   events.py       - Change notifications
#   session.py      - Per-principal session lifecycle
#   config.py       - YAML configuration
#   server.py       - JSON HTTP API
