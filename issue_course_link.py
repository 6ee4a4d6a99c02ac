"""Interactive CLI — mint a course-access link for manual testing."""

from datetime import UTC, datetime, timedelta

from course_auth.config import settings
from course_auth.services.course_links import build_course_link
from course_auth.services.token_codec import SignedTokenCodec

GREEN = "\033[92m"
YELLOW = "\033[93m"
CYAN = "\033[96m"
DIM = "\033[2m"
BOLD = "\033[1m"
RESET = "\033[0m"


def main() -> None:
    print(f"\n{BOLD}{'=' * 52}")
    print("  🔗  Course Access — Link Generator")
    print(f"{'=' * 52}{RESET}\n")

    if not settings.token_secret.get_secret_value():
        print(f"{YELLOW}TOKEN_SECRET is not set; export it or add it to .env first.{RESET}")
        raise SystemExit(1)

    print(f"{DIM}Links point at {settings.frontend_url} (FRONTEND_URL){RESET}\n")

    email = input(f"{YELLOW}Employee email: {RESET}").strip() or "test@example.com"
    course = input(f"{YELLOW}Course name: {RESET}").strip() or "Food Safety"
    days_raw = input(f"{YELLOW}Valid for how many days? [7]: {RESET}").strip()
    days = int(days_raw) if days_raw.isdigit() else 7

    deadline = datetime.now(UTC) + timedelta(days=days)
    codec = SignedTokenCodec(settings.token_secret)
    link = build_course_link(codec, email, course, deadline)

    print(f"\n{GREEN}{BOLD}Link for {email} — {course}{RESET}")
    print(f"{DIM}Deadline: {deadline.isoformat(timespec='minutes')}{RESET}")
    print(f"{CYAN}{link}{RESET}\n")


if __name__ == "__main__":
    main()
