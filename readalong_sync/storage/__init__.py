"""Book store adapters: in-memory store, text source and CSV import.

WHY: The sync path table and the play position are owned by a store
outside the synchronisation core. These adapters give the server, the
CLI and the tests a concrete store without pulling in a database.
"""
