from history_engine.kernel.storage.backends import KeyValueBackend, MemoryBackend, SqlBackend

__all__ = ["KeyValueBackend", "MemoryBackend", "SqlBackend"]
