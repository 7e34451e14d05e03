import re
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]


def test_readme_metadata_names_a_readme():
    pyproject = (ROOT / "pyproject.toml").read_text()

    for match in re.finditer(r'^readme\s*=\s*"([^"]+)"', pyproject, re.M):
        path = ROOT / match.group(1)
        assert path.name.upper().startswith("README")
        assert path.is_file()
