"""Pillow renderer for the status card PNG."""

from __future__ import annotations

import io
from typing import Sequence

from PIL import Image, ImageDraw, ImageFont

from status_card.models import CardModel, StatusState, UsageSample

PAGE_BG = "#0b0d10"
CARD_BG = "#14161a"
CARD_BORDER = "#262a31"
MUTED_TEXT = "#a6adbb"
MAIN_TEXT = "#f2f4f8"
DIVIDER = "#232730"
GRID = "#1d2027"

ONLINE_PILL = "#22c55e"
ONLINE_TEXT = "#0b0d10"
OFFLINE_PILL = "#2b2f37"
OFFLINE_TEXT = MAIN_TEXT

CPU_BLUE = "#3b82f6"
MEM_GREEN = "#22c55e"

PAD = 18


def _font(size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    return ImageFont.load_default(size=size)


def _fmt_num(value: float) -> str:
    # Matches "0.##": at most two decimals, no trailing zeros.
    s = f"{float(value):.2f}".rstrip("0").rstrip(".")
    return s or "0"


def _to_png(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="PNG", optimize=True)
    return buf.getvalue()


def _draw_card_frame(img: Image.Image, width: int, height: int) -> tuple[int, int, int, int]:
    draw = ImageDraw.Draw(img)
    rect = (PAD, PAD, width - PAD, height - PAD)
    shadow = (rect[0], rect[1] + 6, rect[2], rect[3] + 6)
    draw.rounded_rectangle(shadow, radius=18, fill="#050608")
    draw.rounded_rectangle(rect, radius=18, fill=CARD_BG, outline=CARD_BORDER, width=1)
    return rect


def _draw_icon(draw: ImageDraw.ImageDraw, x: int, y: int, size: int = 34) -> None:
    draw.rounded_rectangle((x, y, x + size, y + size), radius=10, fill="#1f232b", outline="#2b303a")
    cx, cy = x + size / 2, y + size / 2
    s = size * 0.22
    draw.rectangle((cx - s, cy - s, cx + s, cy + s), outline=MAIN_TEXT, width=2)


def _draw_label_value(draw: ImageDraw.ImageDraw, x: float, y: float, label: str, value: str) -> None:
    font = _font(14)
    draw.text((x, y), label, fill=MUTED_TEXT, font=font)
    draw.text((x + draw.textlength(label, font=font), y), value, fill=MAIN_TEXT, font=font)


def _draw_legend_item(draw: ImageDraw.ImageDraw, x: float, y: float, color: str, label: str) -> None:
    x, y = int(x), int(y)
    draw.rounded_rectangle((x, y + 3, x + 10, y + 13), radius=2, fill=color)
    draw.text((x + 16, y), label, fill=MUTED_TEXT, font=_font(12))


def _draw_chart(draw: ImageDraw.ImageDraw, rect: tuple[float, float, float, float], usage: Sequence[UsageSample]) -> None:
    left, top, right, bottom = rect
    font = _font(10)
    for pct in (0, 25, 50, 75, 100):
        y = bottom - (bottom - top) * pct / 100.0
        draw.line((left, y, right, y), fill=GRID, width=1)
        label = f"{pct}%"
        draw.text((left - 6 - draw.textlength(label, font=font), y - 6), label, fill=MUTED_TEXT, font=font)

    if not usage:
        msg = "No history"
        draw.text(
            ((left + right) / 2 - draw.textlength(msg, font=_font(12)) / 2, (top + bottom) / 2 - 6),
            msg,
            fill=MUTED_TEXT,
            font=_font(12),
        )
        return

    t0 = usage[0].ts_utc.timestamp()
    t1 = usage[-1].ts_utc.timestamp()
    span = max(1.0, t1 - t0)

    def _point(sample: UsageSample, value: float) -> tuple[float, float]:
        if len(usage) == 1:
            x = (left + right) / 2
        else:
            x = left + (right - left) * (sample.ts_utc.timestamp() - t0) / span
        v = min(100.0, max(0.0, float(value)))
        return x, bottom - (bottom - top) * v / 100.0

    for color, attr in ((MEM_GREEN, "memory_percent"), (CPU_BLUE, "cpu_percent")):
        points = [_point(s, getattr(s, attr)) for s in usage]
        if len(points) == 1:
            x, y = points[0]
            draw.ellipse((x - 2, y - 2, x + 2, y + 2), fill=color)
        else:
            draw.line(points, fill=color, width=2, joint="curve")

    fmt = "%H:%M" if span <= 36 * 3600 else "%m-%d"
    start_label = usage[0].ts_utc.strftime(fmt)
    end_label = usage[-1].ts_utc.strftime(fmt)
    draw.text((left, bottom + 4), start_label, fill=MUTED_TEXT, font=font)
    draw.text((right - draw.textlength(end_label, font=font), bottom + 4), end_label, fill=MUTED_TEXT, font=font)


def render(card: CardModel, width: int = 640, height: int = 420) -> bytes:
    img = Image.new("RGB", (width, height), PAGE_BG)
    left, top, right, bottom = _draw_card_frame(img, width, height)
    draw = ImageDraw.Draw(img)

    x0 = left + 18
    y0 = top + 16
    _draw_icon(draw, x0, y0)
    text_left = x0 + 34 + 12

    draw.text((text_left, y0), card.name, fill=MAIN_TEXT, font=_font(20))
    draw.text((text_left, y0 + 24), card.id_short, fill=MUTED_TEXT, font=_font(13))

    pill_font = _font(13)
    online = card.state == StatusState.ONLINE
    pill_fill, pill_text_color = (ONLINE_PILL, ONLINE_TEXT) if online else (OFFLINE_PILL, OFFLINE_TEXT)
    pill_w = draw.textlength(card.status_text, font=pill_font) + 28
    pill_h = 13 + 16
    pill = (int(right - 18 - pill_w), y0 + 4, right - 18, y0 + 4 + pill_h)
    draw.rounded_rectangle(pill, radius=pill_h // 2, fill=pill_fill)
    draw.text((pill[0] + 14, pill[1] + 7), card.status_text, fill=pill_text_color, font=pill_font)

    draw.text((x0, y0 + 58), f"{card.uptime_text} ({card.health_text})", fill=MUTED_TEXT, font=_font(13))

    metrics_y = y0 + 88
    _draw_label_value(draw, x0, metrics_y, "CPU: ", f"{_fmt_num(card.cpu_now_percent)}%")
    mem = f"{_fmt_num(card.memory_used_gb)}GB / {_fmt_num(card.memory_total_gb)}GB"
    _draw_label_value(draw, (left + right) / 2 + 20, metrics_y, "Memory: ", mem)

    div_y = metrics_y + 30
    draw.line((left + 16, div_y, right - 16, div_y), fill=DIVIDER, width=1)

    title = "Usage History"
    title_font = _font(14)
    mid_x = (left + right) / 2
    draw.text((mid_x - draw.textlength(title, font=title_font) / 2, div_y + 12), title, fill=MAIN_TEXT, font=title_font)

    legend_y = div_y + 36
    _draw_legend_item(draw, mid_x - 60, legend_y, CPU_BLUE, "CPU %")
    _draw_legend_item(draw, mid_x + 10, legend_y, MEM_GREEN, "Memory %")
    if card.subtitle:
        draw.text((x0, legend_y + 18), card.subtitle, fill=MUTED_TEXT, font=_font(12))

    plot = (left + 50, legend_y + 40, right - 24, bottom - 26)
    _draw_chart(draw, plot, card.usage)

    return _to_png(img)


def render_fallback(
    width: int = 640,
    height: int = 420,
    title: str = "All servers offline",
    detail: str = "No whitelisted container is currently running.",
) -> bytes:
    img = Image.new("RGB", (width, height), PAGE_BG)
    left, top, right, bottom = _draw_card_frame(img, width, height)
    draw = ImageDraw.Draw(img)

    _draw_icon(draw, left + 18, top + 16)

    title_font = _font(22)
    detail_font = _font(14)
    mid_x = (left + right) / 2
    mid_y = (top + bottom) / 2
    draw.text((mid_x - draw.textlength(title, font=title_font) / 2, mid_y - 28), title, fill=MAIN_TEXT, font=title_font)
    draw.text(
        (mid_x - draw.textlength(detail, font=detail_font) / 2, mid_y + 6), detail, fill=MUTED_TEXT, font=detail_font
    )

    pill_font = _font(13)
    pill_w = draw.textlength("Offline", font=pill_font) + 28
    pill = (int(right - 18 - pill_w), top + 20, right - 18, top + 20 + 29)
    draw.rounded_rectangle(pill, radius=14, fill=OFFLINE_PILL)
    draw.text((pill[0] + 14, pill[1] + 7), "Offline", fill=OFFLINE_TEXT, font=pill_font)

    return _to_png(img)


class CardRenderer:
    """Object seam for the coordinator; tests swap in a fake with the same two methods."""

    def render(self, card: CardModel, width: int, height: int) -> bytes:
        return render(card, width, height)

    def render_fallback(self, width: int, height: int, title: str, detail: str) -> bytes:
        return render_fallback(width, height, title, detail)
