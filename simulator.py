"""Interactive CLI simulator — walk through the sign-in flow without a UI."""

import asyncio
import logging

from passwordless_auth.models.auth_state import Authenticated, CodeSent
from passwordless_auth.services.session_manager import SessionManager

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
BOLD = "\033[1m"
RESET = "\033[0m"


def _print_reply(text: str, ok: bool = True) -> None:
    colour = GREEN if ok else RED
    print(f"{colour}{BOLD}Auth:{RESET} {text}\n")


async def main() -> None:
    logging.basicConfig(level=logging.WARNING)

    print(f"\n{BOLD}{'=' * 52}")
    print("  🔐  Passwordless Auth — Simulator")
    print(f"{'=' * 52}{RESET}\n")
    print(f"{DIM}Enter an email to get a code, then type the code.{RESET}")
    print(f"{DIM}Commands: resend, status, logout, quit{RESET}\n")

    manager = SessionManager()
    session = manager.get("simulator")

    # Announce countdown expiry as it happens
    def on_otp_input(state) -> None:
        if state.must_resend and state.countdown_seconds == 0 and state.error_message:
            print(f"\n{YELLOW}⏰ {state.error_message}{RESET}")

    unsubscribe = session.otp_input.subscribe(on_otp_input)

    while True:
        try:
            user_input = (await asyncio.to_thread(input, f"{BLUE}{BOLD}You:{RESET} ")).strip()
        except (KeyboardInterrupt, EOFError):
            print(f"\n{DIM}Goodbye!{RESET}")
            break

        if not user_input:
            continue

        command = user_input.lower()
        if command == "quit":
            print(f"{DIM}Goodbye!{RESET}")
            break

        state = session.auth_state.value

        if command == "status":
            otp_state = session.otp_input.value
            if isinstance(state, CodeSent):
                print(
                    f"{DIM}Code pending for {state.identity}: "
                    f"{otp_state.countdown_seconds}s left, "
                    f"{otp_state.attempts_remaining} attempts{RESET}\n"
                )
            elif isinstance(state, Authenticated) and session.session.value:
                label = session.session.value.duration_label(manager.clock.now())
                print(f"{DIM}Signed in as {state.identity} for {label}{RESET}\n")
            else:
                print(f"{DIM}Not signed in{RESET}\n")
            continue

        if command == "logout":
            result = await session.logout()
            _print_reply(result.message or "", result.ok)
            continue

        if command == "resend":
            result = await session.resend()
            if result.code:
                print(f"{DIM}(delivered out of band) code: {result.code}{RESET}")
            _print_reply(result.message or "", result.ok)
            continue

        if isinstance(state, CodeSent):
            result = await session.submit_code(user_input)
        else:
            result = await session.request_code(user_input)
            if result.code:
                print(f"{DIM}(delivered out of band) code: {result.code}{RESET}")

        _print_reply(result.message or "", result.ok)

    unsubscribe()
    manager.close_all()


if __name__ == "__main__":
    asyncio.run(main())
