from .collection import Collection, Record  # noqa: F401
from .folder import Folder  # noqa: F401
from .snippet import PLAIN_TEXT, Snippet, normalize_tags  # noqa: F401
