from dataclasses import dataclass
from typing import Any, Optional, Union

from backoffice.core.messages import Notice

Warning_ = Union[Notice, str, None]


@dataclass
class ActionResult:
    """Successful outcome of an action; `warning` marks a partial success."""
    data: Any = None
    warning: Warning_ = None

    def render_warning(self, locale: str) -> Optional[str]:
        if self.warning is None:
            return None
        if isinstance(self.warning, Notice):
            return self.warning.render(locale)
        return str(self.warning)
