"""
Reminder email bodies (subject, html, text). Content is deliberately plain.
"""
from collections import namedtuple
from datetime import datetime
from html import escape
from zoneinfo import ZoneInfo

from app.config import settings

EmailContent = namedtuple("EmailContent", ["subject", "html", "text"])


def _greeting(full_name: str | None) -> str:
    return f"Bonjour {full_name}," if full_name else "Bonjour,"


def _local(dt: datetime, tz_name: str) -> str:
    return dt.astimezone(ZoneInfo(tz_name)).strftime("%d/%m/%Y %H:%M")


def _render(subject: str, full_name: str | None, lines: list[str], link: str) -> EmailContent:
    greeting = _greeting(full_name)
    html_lines = "".join(f"<p>{escape(line)}</p>" for line in lines)
    html = (
        f"<p>{escape(greeting)}</p>{html_lines}"
        f'<p><a href="{escape(link)}">{escape(link)}</a></p>'
    )
    text = "\n\n".join([greeting, *lines, link])
    return EmailContent(subject=subject, html=html, text=text)


def _availability_link() -> str:
    return f"{settings.site_url}/disponibilites"


def opening_email(full_name: str | None, period_label: str, deadline: datetime | None, tz_name: str) -> EmailContent:
    lines = [f"La saisie des disponibilités pour {period_label} est ouverte."]
    if deadline is not None:
        lines.append(f"Date limite : {_local(deadline, tz_name)}.")
    return _render(f"[{period_label}] Saisie des disponibilités ouverte", full_name, lines, _availability_link())


def weekly_email(full_name: str | None, period_label: str, deadline: datetime | None, tz_name: str) -> EmailContent:
    lines = [f"Vos disponibilités pour {period_label} ne sont pas encore toutes validées."]
    if deadline is not None:
        lines.append(f"Date limite : {_local(deadline, tz_name)}.")
    return _render(f"[{period_label}] Rappel hebdomadaire", full_name, lines, _availability_link())


def deadline_email(full_name: str | None, period_label: str, deadline: datetime, hours: int, tz_name: str) -> EmailContent:
    when = "dans 1 heure" if hours == 1 else f"dans {hours} heures"
    lines = [
        f"La saisie des disponibilités pour {period_label} se termine {when} ({_local(deadline, tz_name)}).",
        "Pensez à valider chaque mois.",
    ]
    return _render(f"[{period_label}] Clôture {when}", full_name, lines, _availability_link())


def assignment_email(
    full_name: str | None,
    start_ts: datetime,
    end_ts: datetime,
    days_before: int,
    tz_name: str,
) -> EmailContent:
    when = "demain" if days_before == 1 else f"dans {days_before} jours"
    lines = [f"Rappel : vous êtes de garde {when}, du {_local(start_ts, tz_name)} au {_local(end_ts, tz_name)}."]
    return _render(f"Garde {when}", full_name, lines, f"{settings.site_url}/planning")
