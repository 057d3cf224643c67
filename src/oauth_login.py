from __future__ import annotations

import argparse
import asyncio
import os
from urllib.parse import urlencode

import httpx

AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
DRIVE_SCOPE = "https://www.googleapis.com/auth/drive.readonly"


def consent_url(client_id: str, redirect_uri: str, scope: str = DRIVE_SCOPE) -> str:
    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": scope,
        # offline + consent makes Google hand out a refresh token every time
        "access_type": "offline",
        "prompt": "consent",
    }
    return f"{AUTH_URL}?{urlencode(params)}"


async def exchange_code(
    http: httpx.AsyncClient,
    code: str,
    client_id: str,
    client_secret: str,
    redirect_uri: str,
    token_url: str = TOKEN_URL,
) -> dict:
    response = await http.post(
        token_url,
        data={
            "grant_type": "authorization_code",
            "code": code,
            "client_id": client_id,
            "client_secret": client_secret,
            "redirect_uri": redirect_uri,
        },
    )
    if response.status_code != 200:
        raise SystemExit(
            f"Token exchange failed ({response.status_code}): {response.text}"
        )
    return response.json()


async def _amain() -> None:
    parser = argparse.ArgumentParser(
        prog="python -m src.oauth_login",
        description=(
            "Interactive Google OAuth login for Drivetunes. "
            "Prints a refresh token for DRIVETUNES_REFRESH_TOKEN."
        ),
    )
    parser.add_argument(
        "--client-id",
        default=os.getenv("DRIVETUNES_CLIENT_ID", ""),
        help="OAuth client id (or env DRIVETUNES_CLIENT_ID)",
    )
    parser.add_argument(
        "--client-secret",
        default=os.getenv("DRIVETUNES_CLIENT_SECRET", ""),
        help="OAuth client secret (or env DRIVETUNES_CLIENT_SECRET)",
    )
    parser.add_argument(
        "--redirect-uri",
        default=os.getenv("DRIVETUNES_REDIRECT_URI", ""),
        help="Redirect URI registered for the client (or env DRIVETUNES_REDIRECT_URI)",
    )

    args = parser.parse_args()

    if not args.client_id:
        raise SystemExit("Missing --client-id (or env DRIVETUNES_CLIENT_ID)")
    if not args.client_secret:
        raise SystemExit("Missing --client-secret (or env DRIVETUNES_CLIENT_SECRET)")
    if not args.redirect_uri:
        raise SystemExit("Missing --redirect-uri (or env DRIVETUNES_REDIRECT_URI)")

    print("Open this URL, grant access, then paste the `code` parameter of the redirect:")
    print(consent_url(args.client_id, args.redirect_uri))

    code = input("code: ").strip()
    if not code:
        raise SystemExit("No authorization code given")

    async with httpx.AsyncClient() as http:
        tokens = await exchange_code(
            http, code, args.client_id, args.client_secret, args.redirect_uri
        )

    refresh_token = tokens.get("refresh_token")
    if not refresh_token:
        raise SystemExit(
            "Google did not return a refresh token.\n"
            "Revoke the app's access at https://myaccount.google.com/permissions "
            "and run this command again."
        )
    print(f"DRIVETUNES_REFRESH_TOKEN={refresh_token}")


def main() -> None:
    asyncio.run(_amain())


if __name__ == "__main__":
    main()
