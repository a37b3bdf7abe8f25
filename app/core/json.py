"""JSON response class used as the application default."""

from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal
from typing import Any

from fastapi.responses import JSONResponse


class AppJSONEncoder(json.JSONEncoder):
  """Encoder that understands Decimal costs and datetimes coming from SQL rows."""

  def default(self, obj: Any) -> Any:
    if isinstance(obj, Decimal):
      return int(obj) if obj % 1 == 0 else float(obj)
    if isinstance(obj, datetime):
      return obj.isoformat()
    return super().default(obj)


class AppJSONResponse(JSONResponse):
  """JSONResponse rendered compactly with AppJSONEncoder."""

  def render(self, content: Any) -> bytes:
    return json.dumps(content, ensure_ascii=False, allow_nan=False, indent=None, separators=(",", ":"), cls=AppJSONEncoder).encode("utf-8")
