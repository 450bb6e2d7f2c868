"""SecureNotes - encrypted personal notes with cloud sync."""

__version__ = "0.1.0"
