from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Protocol

from contract_verifier.exceptions import MalformedContract, SourceUnavailable
from contract_verifier.libraries.common.logging import get_logger
from contract_verifier.models import Interaction

from .broker import BrokerClient, ConsumerVersionSelector
from .pact_parser import parse_pact

logger = get_logger(__name__)


class ContractSource(Protocol):
    """A restartable source of interactions. Loading the same source twice yields the same interactions"""

    def load(self) -> list[Interaction]: ...


@dataclass(frozen=True)
class PactFileSource:
    """Pact files on the local file system

    :param path: A pact file, or a directory of pact files (*.json)
    :param provider: Only load pacts for this provider
    :param consumer: Only load pacts from this consumer
    """

    path: Path
    provider: str | None = None
    consumer: str | None = None

    def load(self) -> list[Interaction]:
        path = Path(self.path)
        if path.is_dir():
            files = sorted(path.glob("*.json"))
        elif path.is_file():
            files = [path]
        else:
            raise SourceUnavailable(f"Pact file or directory does not exist: {path}")

        interactions = []
        for pact_file in files:
            try:
                document = json.loads(pact_file.read_text())
            except json.JSONDecodeError as e:
                raise MalformedContract(f"{pact_file}: invalid JSON: {e}") from e
            except OSError as e:
                raise SourceUnavailable(f"Failed to read {pact_file}: {e}") from e
            if not self._is_target(document):
                logger.debug(f"Skipped {pact_file} (not a pact for the target provider/consumer)")
                continue
            interactions.extend(parse_pact(document, str(pact_file)))
        return interactions

    def _is_target(self, document: Any) -> bool:
        """Check the consumer/provider names of a pact document before parsing it

        A document whose names can't be read is treated as a target so that parsing reports the problem
        """
        for role, expected_name in (("provider", self.provider), ("consumer", self.consumer)):
            if not expected_name:
                continue
            pacticipant = document.get(role) if isinstance(document, dict) else None
            name = pacticipant.get("name") if isinstance(pacticipant, dict) else None
            if isinstance(name, str) and name != expected_name:
                return False
        return True


@dataclass(frozen=True)
class BrokerSource:
    """Pacts fetched from a pact broker"""

    broker_client: BrokerClient
    provider: str
    selectors: tuple[ConsumerVersionSelector, ...] = field(default=(ConsumerVersionSelector(main_branch=True),))
    provider_branch: str | None = None
    include_pending: bool = False
    include_wip_pacts_since: date | None = None

    def load(self) -> list[Interaction]:
        fetched = self.broker_client.fetch_pacts_for_verification(
            self.provider,
            list(self.selectors),
            provider_branch=self.provider_branch,
            include_pending=self.include_pending,
            include_wip_pacts_since=self.include_wip_pacts_since,
        )
        interactions = []
        for pact in fetched:
            interactions.extend(
                parse_pact(pact.document, pact.url, pending=pact.pending, publish_url=pact.publish_url)
            )
        return interactions


def load_interactions(source: ContractSource) -> list[Interaction]:
    """Load interactions from the contract source

    :param source: Contract source
    :raises SourceUnavailable: The source cannot be reached
    :raises MalformedContract: A contract in the source cannot be parsed
    """
    interactions = source.load()
    logger.info(f"Loaded {len(interactions)} interaction(s) from {source}")
    return interactions
