# cenownik/notifications/templates.py

"""Email rendering for price-match notifications."""

from datetime import datetime
from html import escape

from cenownik.models.notification import NotificationEvent

_SOURCE_DISPLAY_NAMES: dict[str, str] = {
    "morele": "MORELE.NET",
    "morele.net": "MORELE.NET",
    "x-kom": "X-KOM",
    "xkom": "X-KOM",
}


def format_price(price: float) -> str:
    """Format a price the Polish way: ``3499,00``, ``12 345,00``.

    Thousands are grouped with a no-break space from five integer digits.
    """
    sign = "-" if price < 0 else ""
    whole, frac = f"{abs(price):.2f}".split(".")
    if len(whole) >= 5:
        groups: list[str] = []
        while whole:
            groups.insert(0, whole[-3:])
            whole = whole[:-3]
        whole = "\xa0".join(groups)
    return f"{sign}{whole},{frac}"


def source_display_name(source: str) -> str:
    return _SOURCE_DISPLAY_NAMES.get(
        source.lower().strip(), source.upper()
    )


def render_subject(event: NotificationEvent) -> str:
    listing = event.listing
    return (
        f"CENOWNIK — {listing.title} — "
        f"{format_price(listing.current_price)} zł"
    )


def _image_section(event: NotificationEvent, source_name: str) -> str:
    listing = event.listing
    if listing.images:
        return (
            '<div style="padding: 60px 40px; background: linear-gradient(145deg, #ffffff, #e6e6e6); '
            'text-align: center;">'
            f'<img src="{escape(listing.images[0])}" alt="{escape(listing.title)}" '
            'style="max-width: 80%; max-height: 300px; object-fit: contain;" />'
            '<div style="font-size: 11px; color: #aaa; letter-spacing: 2px;">'
            f"{source_name}<br/>#{listing.id}<br/>{datetime.now().year}"
            "</div></div>"
        )
    return (
        '<div style="padding: 60px 40px; background: linear-gradient(145deg, #ffffff, #e6e6e6); '
        'text-align: center;">'
        '<div style="font-size: 11px; color: #aaa; letter-spacing: 2px;">'
        f"{source_name} • #{listing.id}"
        "</div></div>"
    )


def _price_display(event: NotificationEvent) -> str:
    listing = event.listing
    current = (
        '<span style="color: #333; font-size: 24px; font-weight: 300;">'
        f"{format_price(listing.current_price)} zł</span>"
    )
    if listing.previous_price is None:
        return current
    previous = (
        '<span style="color: #aaa; text-decoration: line-through; '
        'font-size: 14px; margin-right: 12px;">'
        f"{format_price(listing.previous_price)} zł</span>"
    )
    drop = ""
    if event.price_drop_percentage > 0:
        drop = (
            '<span style="color: #888; font-size: 12px; margin-left: 8px;">'
            f"−{event.price_drop_percentage:.0f}%</span>"
        )
    return previous + current + drop


def render_html(event: NotificationEvent) -> str:
    """Render the HTML body of a price-match email."""
    listing = event.listing
    source_name = source_display_name(listing.source)
    savings = ""
    if event.savings_amount > 0:
        savings = (
            '<span style="margin-left: 16px;">OSZCZĘDZASZ: '
            f"{format_price(event.savings_amount)} zł</span>"
        )

    return f"""<!DOCTYPE html>
<html lang="pl">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Cenownik — Cena spadła</title>
</head>
<body style="margin: 0; padding: 0; font-family: 'Helvetica Neue', Arial, sans-serif; background-color: #f8f8f8; color: #333;">
  <table width="100%" cellpadding="0" cellspacing="0" style="background-color: #f5f5f5; padding: 40px 20px;">
    <tr>
      <td align="center">
        <table width="100%" cellpadding="0" cellspacing="0" style="max-width: 560px; background: #fff;">
          <tr><td>{_image_section(event, source_name)}</td></tr>
          <tr>
            <td style="padding: 30px 40px; border-top: 1px solid #e0e0e0;">
              <p style="margin: 0 0 16px; font-size: 16px; line-height: 1.5;">{escape(listing.title)}</p>
              <div style="margin-bottom: 20px;">{_price_display(event)}</div>
              <p style="margin: 0 0 8px; font-size: 12px; color: #888; letter-spacing: 1px;">
                TWÓJ PRÓG: {format_price(listing.target_price)} zł
                {savings}
              </p>
            </td>
          </tr>
          <tr>
            <td style="padding: 0 40px 30px;">
              <a href="{escape(listing.link)}" target="_blank" style="display: inline-block; background: #333; color: #fff; text-decoration: none; font-size: 12px; padding: 14px 28px; letter-spacing: 2px; text-transform: uppercase;">
                Zobacz ofertę →
              </a>
            </td>
          </tr>
          <tr>
            <td style="padding: 20px 40px; border-top: 1px solid #e0e0e0;">
              <table width="100%" cellpadding="0" cellspacing="0">
                <tr>
                  <td style="font-size: 11px; color: #888;"><strong style="color: #333;">CENOWNIK</strong></td>
                  <td style="text-align: right; font-size: 11px; color: #888;">{escape(event.display_name.upper())}</td>
                </tr>
              </table>
            </td>
          </tr>
        </table>
      </td>
    </tr>
  </table>
</body>
</html>"""


def render_plain_text(event: NotificationEvent) -> str:
    """Render the plain-text alternative of a price-match email."""
    listing = event.listing
    price_line = f"{format_price(listing.current_price)} zł"
    if listing.previous_price is not None:
        price_line += f" (było: {format_price(listing.previous_price)} zł)"
    if event.price_drop_percentage > 0:
        price_line += f" −{event.price_drop_percentage:.0f}%"

    lines = [
        "CENOWNIK",
        "━" * 30,
        "",
        listing.title,
        "",
        price_line,
        "",
        f"Twój próg: {format_price(listing.target_price)} zł",
    ]
    if event.savings_amount > 0:
        lines.append(f"Oszczędzasz: {format_price(event.savings_amount)} zł")
    lines += [
        "",
        f"{source_display_name(listing.source)} • #{listing.id}",
        "",
        "━" * 30,
        listing.link,
        "",
        event.display_name,
    ]
    return "\n".join(lines)
