"""Configuration, storage and scheduling shared by the offline layer."""
