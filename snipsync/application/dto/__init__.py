from .create_snippet_dto import CreateSnippetDTO  # noqa: F401
from .update_snippet_dto import UpdateSnippetDTO  # noqa: F401
