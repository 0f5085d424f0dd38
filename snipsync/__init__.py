"""snipsync: folder/snippet store kept in sync across a local JSON store,
a mirrored backup file and per-snippet GitHub Gists."""

__version__ = "0.3.0"
