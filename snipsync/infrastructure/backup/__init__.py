from .backup_mirror import BackupMirror, MirrorResult  # noqa: F401
from .backup_watcher import BackupFileHandler, BackupWatcher  # noqa: F401
