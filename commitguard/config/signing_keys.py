"""
CommitGuard Pinned Platform Keys

GitHub signs the commits it creates itself (web UI merges, squashes and
edits) with its "web-flow" key. The key is imported into the keyring so
those signatures can be checked, but it is never bound to an identity in
the trust map.

Key rotation: GitHub rotated web-flow in January 2024. Update the pin here
when GitHub publishes a new key.
"""

WEB_FLOW_KEY_URL = "https://github.com/web-flow.gpg"

# web-flow (GitHub.com) <noreply@github.com>, created 2024-01-16
WEB_FLOW_KEY_FINGERPRINT = "968479A1AFF927E37D1A566BB5690EEEBB952194"
WEB_FLOW_KEY_ID = WEB_FLOW_KEY_FINGERPRINT[-16:]

GITHUB_NOREPLY_DOMAIN = "users.noreply.github.com"
