"""Challenge responders.

Serving a challenge answer is outside the ACME exchange itself. The client
hands every selected challenge to a responder, which makes the key
authorization reachable by the CA and removes it afterwards.
"""

import logging
import os
from typing import Any, Protocol

from acme import challenges

logger = logging.getLogger(__name__)

WELL_KNOWN_PATH = os.path.join(".well-known", "acme-challenge")


class ChallengeResponder(Protocol):
    """Makes challenge validations reachable by the CA."""

    def supports(self, challenge_type: str) -> bool:
        ...

    def perform(self, domain: str, challenge: Any, validation: str) -> None:
        ...

    def cleanup(self, domain: str, challenge: Any) -> None:
        ...


class WebrootResponder:
    """Publishes HTTP-01 key authorizations below a web server root."""

    def __init__(self, webroot: str):
        self.webroot = os.fspath(webroot)

    def supports(self, challenge_type: str) -> bool:
        return challenge_type == challenges.HTTP01.typ

    def challenge_path(self, challenge: Any) -> str:
        token = challenge.encode('token')
        return os.path.join(self.webroot, WELL_KNOWN_PATH, token)

    def perform(self, domain: str, challenge: Any, validation: str) -> None:
        path = self.challenge_path(challenge)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, 'w', encoding='ascii') as f:
            f.write(validation)
        # The web server usually runs as another user
        os.chmod(path, 0o644)
        logger.info(f"Published HTTP-01 validation for {domain} at {path}")

    def cleanup(self, domain: str, challenge: Any) -> None:
        path = self.challenge_path(challenge)
        try:
            os.remove(path)
        except FileNotFoundError:
            logger.debug(f"Challenge file for {domain} already removed: {path}")
            return
        logger.debug(f"Removed HTTP-01 validation for {domain}: {path}")
