from .database import DatabaseSetup, SetupOptions, database_decision, setup_database

__all__ = ["DatabaseSetup", "SetupOptions", "database_decision", "setup_database"]
