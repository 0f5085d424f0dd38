import pytest

from snipsync.domain.entities.snippet import PLAIN_TEXT
from snipsync.domain.services.language_detector import LanguageDetector


@pytest.mark.parametrize(
    "name,code,expected",
    [
        ("retry.py", "", "python"),
        ("App.tsx", "", "typescriptreact"),
        ("deploy.sh", "", "shellscript"),
        ("Dockerfile", "FROM python", "dockerfile"),
        ("Makefile", "", "makefile"),
        ("run", "#!/usr/bin/env bash\necho hi", "shellscript"),
        ("tool", "#!/usr/bin/env python3\nprint(1)", "python"),
        ("notes.txt", "just some words", PLAIN_TEXT),
        ("untitled", "", PLAIN_TEXT),
    ],
)
def test_detect_language(name, code, expected):
    assert LanguageDetector().detect_language(code, name) == expected


def test_strong_python_signal_overrides_txt():
    code = "import os\n\ndef main():\n    return os.getcwd()\n"
    assert LanguageDetector().detect_language(code, "snippet.txt") == "python"
