# catalog_bot/ui/messages.py

from __future__ import annotations

from html import escape
from typing import Iterable

from ..models import Series

OPERATION_IN_PROGRESS = "❌ You already have an operation in progress. Use /cancel first."
OPERATION_CANCELLED = "✅ Operation cancelled."
NOTHING_TO_CANCEL = "ℹ️ There is no operation to cancel."
NOT_PERMITTED = "❌ You don't have permission to upload content."
ADMIN_ONLY = "❌ This command is for administrators only."
CONTENT_NOT_FOUND = "❌ Content not found. The link may be invalid or expired."
NO_EPISODES = "❌ No episodes found for this season."
NO_SEASONS = "❌ This series has no seasons yet."


def _line(icon: str | None, text: str) -> str:
    """Prefix text with an icon if provided."""
    if icon:
        return f"{icon} {text}"
    return text


def movie_caption(title: str, year: int, description: str, genres: Iterable[str]) -> str:
    """HTML caption posted with a movie file in its storage channel."""
    genre_list = list(genres)
    lines = [f"<b>{escape(title)}</b> ({year})"]
    if description:
        lines.extend(["", escape(description)])
    if genre_list:
        lines.extend(["", f"Genre: {escape(', '.join(genre_list))}"])
    return "\n".join(lines)


def episode_caption(
    series_title: str, season_number: int, episode_number: int, episode_title: str
) -> str:
    return (
        f"<b>{escape(series_title)}</b>\n"
        f"Season {season_number}, Episode {episode_number}\n\n"
        f"<b>{escape(episode_title)}</b>"
    )


def upload_progress(processed: int, total: int, unit: str = "episodes") -> str:
    return f"📊 Upload progress: {processed}/{total} {unit} processed..."


def rate_limit_notice(wait_seconds: float) -> str:
    return f"⏳ Rate limit hit. Waiting {wait_seconds:.0f}s before retrying..."


def batch_summary(
    *, label: str, succeeded: int, failed: Iterable[tuple[str, str]], cancelled: bool = False
) -> str:
    """Final report of a bulk upload: counts plus one line per failed item."""
    failures = list(failed)
    lines = [
        f"{'⚠️' if failures or cancelled else '✅'} {escape(label)} finished.",
        f"Succeeded: {succeeded}",
        f"Failed: {len(failures)}",
    ]
    if cancelled:
        lines.append("The batch was stopped before every file was processed.")
    for name, reason in failures:
        lines.append(f"• {escape(name)}: {escape(reason)}")
    return "\n".join(lines)


def delivery_summary(delivered: int, total: int) -> str:
    return f"✅ {delivered}/{total} relayed"


def season_header(series: Series, season_title: str, episode_count: int) -> str:
    return (
        f"📺 <b>{escape(series.title)}</b>\n"
        f"{escape(season_title)}\n"
        f"Sending {episode_count} episode(s)..."
    )


def content_line(icon: str, title: str, year: int, link: str) -> str:
    return _line(icon, f"<b>{escape(title)}</b> ({year})\n{escape(link)}")


def failure_message(user_message: str, label: str, command: str) -> str:
    return f"{user_message}\n\n❌ {label} failed. Use /{command} to start again."


def get_help_message_text(is_operator: bool) -> str:
    """Returns the help text; operators also see the management commands."""
    text = (
        "👋 Welcome! Open a shared link to receive movies and series.\n\n"
        "/help - Display this message."
    )
    if not is_operator:
        return text
    return text + (
        "\n\n<b>Operator commands</b>\n"
        "/uploadmovie - Upload one or more movies.\n"
        "/uploadseries - Create a series and upload its seasons.\n"
        "/addseason - Add a season to an existing series.\n"
        "/addepisode - Add episodes to an existing season.\n"
        "/editcontent - Edit a movie or series.\n"
        "/deletecontent - Delete a movie or series.\n"
        "/findcontent - Search the catalog.\n"
        "/viewcontent - List the latest uploads.\n"
        "/cancel - Cancel the current operation.\n"
        "/grant &lt;user_id&gt; - Allow a user to upload (admins).\n"
        "/revoke &lt;user_id&gt; - Revoke upload rights (admins)."
    )
