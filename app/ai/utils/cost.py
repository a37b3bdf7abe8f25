"""Deterministic cost and latency estimates for generation backends."""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_COST = 0.18
DEFAULT_DURATION_SECONDS = 5.0
DEFAULT_RESOLUTION = "720p"

_STANDARD_HEIGHTS = (480, 720, 1080)


@dataclass(frozen=True)
class SpeedBand:
  """Expected wall-clock generation latency in seconds."""

  min_seconds: int
  max_seconds: int
  typical_seconds: int


@dataclass(frozen=True)
class CostEstimate:
  cost: float
  speed_band: SpeedBand


KLING_SPEED = SpeedBand(min_seconds=30, max_seconds=60, typical_seconds=45)
LUCY_SPEED = SpeedBand(min_seconds=10, max_seconds=30, typical_seconds=20)
SEEDANCE_SPEED = SpeedBand(min_seconds=10, max_seconds=30, typical_seconds=20)
HAILUO_SPEED = SpeedBand(min_seconds=15, max_seconds=25, typical_seconds=20)
IMAGE_SPEED = SpeedBand(min_seconds=5, max_seconds=20, typical_seconds=10)

KLING_PRICE_5S = 0.35
KLING_PRICE_10S = 0.70
LUCY_RATE_PER_SECOND = 0.08
HAILUO_RATE_PER_SECOND = 0.017

# Published seedance prices keyed by (seconds, resolution).
SEEDANCE_PRICES: dict[tuple[int, str], float] = {(3, "480p"): 0.11, (5, "720p"): 0.18, (5, "1080p"): 0.25, (10, "720p"): 0.36}
SEEDANCE_RESOLUTION_MULTIPLIERS = {"1080p": 1.4, "480p": 0.6}

# Per-image prices keyed by backend id prefix.
IMAGE_PRICES: dict[str, float] = {"gemini-flash": 0.039, "nano-banana": 0.039, "seedream": 0.03, "flux": 0.025}


def normalize_duration(duration: int | float | str | None) -> float:
  """Coerce 5, 5.0, "5" and "5s" to the same float."""
  if duration is None:
    return DEFAULT_DURATION_SECONDS
  if isinstance(duration, bool):
    raise ValueError("duration must be a number of seconds.")
  if isinstance(duration, int | float):
    value = float(duration)
  else:
    text = duration.strip().lower().removesuffix("s").strip()
    if not text:
      return DEFAULT_DURATION_SECONDS
    try:
      value = float(text)
    except ValueError as exc:
      raise ValueError(f"Invalid duration: {duration!r}") from exc
  if value < 0:
    raise ValueError("duration must not be negative.")
  return value


def normalize_resolution(resolution: str | int | None) -> str | None:
  """Return a canonical '<height>p' label, snapping pixel heights to 480/720/1080."""
  if resolution is None:
    return None
  if isinstance(resolution, int):
    return _snap_height(resolution)
  text = resolution.strip().lower()
  if not text:
    return None
  digits = text.removesuffix("p")
  if digits.isdigit():
    return _snap_height(int(digits))
  return text


def resolution_from_dimensions(width: int | None, height: int | None) -> str | None:
  """Derive a resolution label from measured output dimensions using the short side."""
  sides = [side for side in (width, height) if side]
  if not sides:
    return None
  return _snap_height(min(sides))


def _snap_height(height: int) -> str:
  nearest = min(_STANDARD_HEIGHTS, key=lambda standard: abs(standard - height))
  return f"{nearest}p"


def _image_price(backend: str) -> float | None:
  for prefix, price in IMAGE_PRICES.items():
    if backend.startswith(prefix):
      return price
  return None


def _billed_seconds(seconds: float) -> int:
  """Snap a measured clip length (5.04, 9.97) to the whole-second length it was requested at."""
  return round(seconds)


def _seedance_cost(seconds: float, resolution: str | None) -> float:
  label = resolution or DEFAULT_RESOLUTION
  fixed = SEEDANCE_PRICES.get((_billed_seconds(seconds), label))
  if fixed is not None:
    return fixed
  # Off-table lengths scale the base price by the raw duration.
  multiplier = SEEDANCE_RESOLUTION_MULTIPLIERS.get(label, 1.0)
  return DEFAULT_COST * (seconds / 5) * multiplier


def estimate(backend_id: str, duration: int | float | str | None, resolution: str | int | None = None) -> CostEstimate:
  """Estimate the cost and latency band of one generation call.

  Pure and deterministic. Video backends price by duration and resolution; image
  backends charge a flat per-image price and ignore both. Unknown backends fall back to
  the five-second seedance price. Fixed-price families snap measured clip lengths
  to whole seconds before the lookup.
  """
  backend = backend_id.strip().lower()
  seconds = normalize_duration(duration)
  label = normalize_resolution(resolution)

  if backend.startswith("kling"):
    cost = KLING_PRICE_5S if _billed_seconds(seconds) <= 5 else KLING_PRICE_10S
    return CostEstimate(cost=round(cost, 6), speed_band=KLING_SPEED)

  if backend.startswith("lucy"):
    return CostEstimate(cost=round(seconds * LUCY_RATE_PER_SECOND, 6), speed_band=LUCY_SPEED)

  if backend.startswith("hailuo"):
    return CostEstimate(cost=round(seconds * HAILUO_RATE_PER_SECOND, 6), speed_band=HAILUO_SPEED)

  if backend.startswith("seedance"):
    return CostEstimate(cost=round(_seedance_cost(seconds, label), 6), speed_band=SEEDANCE_SPEED)

  image_price = _image_price(backend)
  if image_price is not None:
    return CostEstimate(cost=image_price, speed_band=IMAGE_SPEED)

  return CostEstimate(cost=DEFAULT_COST, speed_band=SEEDANCE_SPEED)
