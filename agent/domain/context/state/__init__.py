# State = the avatar profile and memory log that survive across turns of a session.
#
# Message history is kept separately by the session agent; the state store
# only ever holds data the tools write and the context builder reads.
#
# Mutations are read-modify-write under one lock and persisted before the
# in-memory snapshot is swapped, so a reader never sees a half-applied update.
#
# A missing or malformed snapshot is reset to an empty state on startup.
