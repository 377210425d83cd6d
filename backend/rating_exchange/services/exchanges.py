"""
Exchange and round setup.

An exchange is the long-lived identity (guild + slug); rounds are opened on
it one submission window at a time.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from rating_exchange.models.exchange import Exchange, JamType
from rating_exchange.models.exchange_round import ExchangeRound, RoundState
from rating_exchange.services.errors import (
    DuplicateExchangeSlug,
    InvalidJamLink,
    InvalidSlug,
    OverlappingRound,
    RecordNotFound,
)
from rating_exchange.utils.jam_links import jam_link_example, normalize_jam_link
from rating_exchange.utils.slugs import is_valid_slug, slugify_camel
from rating_exchange.utils.timeutil import as_utc_naive

logger = logging.getLogger(__name__)

MAX_GAMES_PER_MEMBER = 32


def get_exchange(session: Session, exchange_id: int) -> Exchange:
    exchange = session.get(Exchange, exchange_id)
    if not exchange:
        raise RecordNotFound(f"Exchange {exchange_id} not found")
    return exchange


def create_exchange(
    session: Session,
    guild: str,
    jam_type: JamType,
    jam_link: str,
    display_name: str,
    submission_channel: str,
    slug: Optional[str] = None,
) -> Exchange:
    """
    Create an exchange after normalizing its jam link and slug.

    Raises:
        InvalidJamLink: link does not match the jam type
        InvalidSlug: slug (given or derived) is not `A-Za-z0-9_-`
        DuplicateExchangeSlug: guild already has this slug
    """
    jam_type = JamType(jam_type)
    normalized_link = normalize_jam_link(jam_type, jam_link)
    if not normalized_link:
        raise InvalidJamLink(
            f"Invalid jam link '{jam_link}'. For {jam_type.value} it should look like {jam_link_example(jam_type)}"
        )

    slug = slug.strip() if slug else slugify_camel(display_name)
    if not is_valid_slug(slug):
        raise InvalidSlug(f"Slug '{slug}' must be 1-64 characters of A-Za-z0-9_-")

    existing = session.exec(select(Exchange).where(Exchange.guild == guild, Exchange.slug == slug)).first()
    if existing:
        raise DuplicateExchangeSlug(f"Exchange with slug '{slug}' already exists in guild {guild}")

    exchange = Exchange(
        guild=guild,
        jam_type=jam_type.value,
        jam_link=normalized_link,
        slug=slug,
        display_name=display_name.strip(),
        submission_channel=submission_channel,
    )
    session.add(exchange)
    try:
        session.commit()
    except IntegrityError as e:
        session.rollback()
        raise DuplicateExchangeSlug(f"Exchange with slug '{slug}' already exists in guild {guild}") from e
    session.refresh(exchange)

    logger.info("Created exchange %s (%s) in guild %s", exchange.id, slug, guild)
    return exchange


def list_exchanges(session: Session, guild: Optional[str] = None) -> List[Exchange]:
    query = select(Exchange)
    if guild is not None:
        query = query.where(Exchange.guild == guild)
    return list(session.exec(query.order_by(Exchange.display_name, Exchange.id)).all())


def rename_exchange(session: Session, exchange_id: int, display_name: str) -> Exchange:
    """Display name is the only mutable field of an exchange."""
    display_name = display_name.strip()
    if not display_name:
        raise ValueError("display_name must not be empty")

    exchange = get_exchange(session, exchange_id)
    exchange.display_name = display_name
    session.add(exchange)
    session.commit()
    session.refresh(exchange)
    return exchange


def delete_exchange(session: Session, exchange_id: int) -> None:
    """Delete an exchange with its rounds, submissions and play history."""
    exchange = get_exchange(session, exchange_id)
    session.delete(exchange)
    session.commit()
    logger.info("Deleted exchange %s", exchange_id)


def open_round(
    session: Session,
    exchange_id: int,
    submissions_start_at: datetime,
    submissions_end_at: datetime,
    games_per_member: int,
) -> ExchangeRound:
    """
    Open a new round on an exchange.

    Raises:
        ValueError: empty window or games_per_member out of range
        OverlappingRound: another open round of the exchange overlaps the window
    """
    get_exchange(session, exchange_id)

    start = as_utc_naive(submissions_start_at)
    end = as_utc_naive(submissions_end_at)
    if end <= start:
        raise ValueError("submissions_end_at must be after submissions_start_at")
    if not 1 <= games_per_member <= MAX_GAMES_PER_MEMBER:
        raise ValueError(f"games_per_member must be between 1 and {MAX_GAMES_PER_MEMBER}")

    overlapping = session.exec(
        select(ExchangeRound).where(
            ExchangeRound.exchange_id == exchange_id,
            ExchangeRound.state == RoundState.open.value,
            ExchangeRound.submissions_start_at < end,
            ExchangeRound.submissions_end_at > start,
        )
    ).first()
    if overlapping:
        raise OverlappingRound(
            f"Round {overlapping.id} of exchange {exchange_id} is still open and overlaps this window"
        )

    exchange_round = ExchangeRound(
        exchange_id=exchange_id,
        submissions_start_at=start,
        submissions_end_at=end,
        games_per_member=games_per_member,
    )
    session.add(exchange_round)
    session.commit()
    session.refresh(exchange_round)

    logger.info("Opened round %s on exchange %s (k=%s)", exchange_round.id, exchange_id, games_per_member)
    return exchange_round


def list_rounds(session: Session, exchange_id: int) -> List[ExchangeRound]:
    get_exchange(session, exchange_id)
    return list(
        session.exec(
            select(ExchangeRound)
            .where(ExchangeRound.exchange_id == exchange_id)
            .order_by(ExchangeRound.submissions_start_at, ExchangeRound.id)
        ).all()
    )
