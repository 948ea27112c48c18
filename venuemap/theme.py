"""Site theme: colours and font as one explicit configuration value.

The API loads the active theme once at startup (``load_active_theme``) and
keeps it on ``app.state.theme``. Admin updates go through ``save_theme`` /
``reset_theme``, which persist to ``theme_settings`` and return the new value.
"""

import colorsys
import logging
import math
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from venuemap.exceptions import InvalidThemeError

logger = logging.getLogger(__name__)

_HEX_COLOR = re.compile(r"^#[0-9a-fA-F]{6}$")


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def hex_to_hsl(hex_color: str) -> str:
    """``"#rrggbb"`` to the ``"H S% L%"`` triple CSS variables expect."""
    if not _HEX_COLOR.match(hex_color):
        raise InvalidThemeError(f"Not a #rrggbb colour: {hex_color!r}")
    r, g, b = (int(hex_color[i : i + 2], 16) / 255 for i in (1, 3, 5))
    h, l, s = colorsys.rgb_to_hls(r, g, b)
    return f"{_round_half_up(h * 360)} {_round_half_up(s * 100)}% {_round_half_up(l * 100)}%"


def hsl_to_hex(hue: float, saturation: float, lightness: float) -> str:
    """Hue in degrees, saturation and lightness in percent, to ``"#rrggbb"``."""
    if not (0 <= saturation <= 100 and 0 <= lightness <= 100):
        raise InvalidThemeError("saturation and lightness must be within 0-100")
    r, g, b = colorsys.hls_to_rgb((hue % 360) / 360, lightness / 100, saturation / 100)
    return "#" + "".join(f"{_round_half_up(c * 255):02x}" for c in (r, g, b))


class FontChoice(str, Enum):
    GEIST = "geist"
    INTER = "inter"
    RALEWAY = "raleway"
    POPPINS = "poppins"
    OPEN_SANS = "open_sans"
    ROBOTO = "roboto"
    LATO = "lato"
    BEBAS_NEUE = "bebas_neue"
    HANKEN_GROTESK = "hanken_grotesk"

    @property
    def css_variable(self) -> str:
        return "--font-" + ("geist-sans" if self is FontChoice.GEIST else self.value.replace("_", "-"))


class ThemeColors(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    primary: str = "#d32117"
    foreground: str = "#301718"
    background: str = "#f4f5f7"
    card: str = "#ffffff"
    text_accent: str = Field("#ffffff", alias="textAccent")
    secondary: str = "#f5f2f2"
    accent: str = "#d32117"
    muted: str = "#faf9f9"
    border: str = "#e5dede"

    @field_validator("*")
    @classmethod
    def _hex(cls, v: str) -> str:
        if not isinstance(v, str) or not _HEX_COLOR.match(v):
            raise ValueError("must be a #rrggbb colour")
        return v.lower()


class ThemeConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = "Default Theme"
    font: FontChoice = FontChoice.GEIST
    colors: ThemeColors = Field(default_factory=ThemeColors)
    updated_at: Optional[datetime] = None


DEFAULT_THEME = ThemeConfig()


def css_variables(theme: ThemeConfig) -> dict[str, str]:
    """CSS custom properties for a theme, colours as HSL triples."""
    c = theme.colors
    hsl = {name: hex_to_hsl(value) for name, value in c.model_dump().items()}
    return {
        "--primary": hsl["primary"],
        "--foreground": hsl["foreground"],
        "--background": hsl["background"],
        "--secondary": hsl["secondary"],
        "--accent": hsl["accent"],
        "--muted": hsl["muted"],
        "--border": hsl["border"],
        "--input": hsl["muted"],
        "--ring": hsl["primary"],
        "--card": hsl["card"],
        "--card-foreground": hsl["foreground"],
        "--popover": hsl["card"],
        "--popover-foreground": hsl["foreground"],
        "--primary-foreground": hsl["text_accent"],
        "--secondary-foreground": hsl["foreground"],
        "--accent-foreground": hsl["text_accent"],
        "--muted-foreground": hsl["foreground"],
        "--font-sans": f"var({theme.font.css_variable})",
    }


def render_css(theme: ThemeConfig) -> str:
    body = "\n".join(f"  {name}: {value};" for name, value in css_variables(theme).items())
    return f":root {{\n{body}\n}}\n"


def parse_theme(payload: dict[str, Any]) -> ThemeConfig:
    """Validate an admin-supplied theme body.

    Raises:
        InvalidThemeError: Naming the first offending field.
    """
    try:
        return ThemeConfig(**payload)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"])
        raise InvalidThemeError(f"Missing or invalid {field}: {first['msg']}") from e


def _theme_document(theme: ThemeConfig) -> dict[str, Any]:
    return {
        "name": theme.name,
        "font": theme.font.value,
        "colors": theme.colors.model_dump(by_alias=True),
    }


async def load_active_theme(db: AsyncIOMotorDatabase) -> ThemeConfig:
    """Active theme from ``theme_settings``, or ``DEFAULT_THEME``."""
    doc = await db.theme_settings.find_one({"is_active": True})
    if not doc:
        return DEFAULT_THEME
    try:
        return ThemeConfig(
            name=doc.get("name", DEFAULT_THEME.name),
            font=doc.get("font", DEFAULT_THEME.font),
            colors=doc.get("colors") or {},
            updated_at=doc.get("updated_at"),
        )
    except ValidationError as e:
        logger.warning("Stored theme %r is invalid, using defaults: %s", doc.get("name"), e)
        return DEFAULT_THEME


async def save_theme(db: AsyncIOMotorDatabase, theme: ThemeConfig) -> ThemeConfig:
    """Persist ``theme`` as the only active theme and return it stamped.

    The theme is stored first, inactive if new, then one pipeline update sets
    ``is_active`` on every document by name. A failure before that update
    leaves the previous theme active.
    """
    now = datetime.now(timezone.utc)
    await db.theme_settings.update_one(
        {"name": theme.name},
        {"$set": {**_theme_document(theme), "updated_at": now}, "$setOnInsert": {"is_active": False}},
        upsert=True,
    )
    await db.theme_settings.update_many(
        {}, [{"$set": {"is_active": {"$eq": ["$name", {"$literal": theme.name}]}}}]
    )
    logger.info("Theme %r activated", theme.name)
    return theme.model_copy(update={"updated_at": now})


async def reset_theme(db: AsyncIOMotorDatabase) -> ThemeConfig:
    return await save_theme(db, DEFAULT_THEME)
