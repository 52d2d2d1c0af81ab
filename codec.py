from dataclasses import dataclass, field
from typing import Generic, List, Sequence, Type, TypeVar

from pydantic import BaseModel, ValidationError

from logging_config import get_logger
from schemas.entities import RawCollection

logger = get_logger(__name__)

EntityT = TypeVar("EntityT", bound=BaseModel)


@dataclass
class DecodeReport(Generic[EntityT]):
    entries: List[EntityT] = field(default_factory=list)
    skipped: int = 0


def encode(entries: Sequence[BaseModel]) -> List[str]:
    """One JSON string per entity, in order."""
    return [entry.model_dump_json(by_alias=True) for entry in entries]


def decode_with_report(raw: RawCollection, entity_type: Type[EntityT]) -> DecodeReport[EntityT]:
    """Parse each raw entry on its own. Entries that fail to parse are skipped."""
    report: DecodeReport[EntityT] = DecodeReport()
    if raw is None:
        return report
    if isinstance(raw, str):
        raw = [raw]
    elif not isinstance(raw, (list, tuple)):
        # an unknown shape counts as a single bad entry
        report.skipped = 1
        logger.debug(f"Skipped {entity_type.__name__} collection of unexpected type {type(raw).__name__}")
        return report

    for position, item in enumerate(raw):
        try:
            if isinstance(item, str):
                report.entries.append(entity_type.model_validate_json(item))
            else:
                # already-parsed objects written by older clients
                report.entries.append(entity_type.model_validate(item))
        except (ValidationError, ValueError) as e:
            report.skipped += 1
            logger.debug(f"Skipped undecodable {entity_type.__name__} entry at position {position}: {e}")
    if report.skipped:
        logger.debug(f"Decoded {len(report.entries)} {entity_type.__name__} entries, skipped {report.skipped}")
    return report


def decode(raw: RawCollection, entity_type: Type[EntityT]) -> List[EntityT]:
    return decode_with_report(raw, entity_type).entries
