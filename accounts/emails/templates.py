from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

TEMPLATE_DIR = Path(__file__).parent / "templates"


class EmailTemplates:
    def __init__(self, directory: Path = TEMPLATE_DIR) -> None:
        self._env = Environment(
            loader=FileSystemLoader(str(directory)),
            autoescape=select_autoescape(["html"]),
            undefined=StrictUndefined,
        )

    def render(self, name: str, subject: str, data: dict[str, Any]) -> str:
        """Render ``<name>.html`` with the caller's data plus ``subject`` and ``year``."""
        template = self._env.get_template(f"{name}.html")
        return template.render(
            **data, subject=subject, year=datetime.now(timezone.utc).year
        )
