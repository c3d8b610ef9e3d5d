"""
Identity reconciliation.

An observation (email, phone number or both) is matched against existing
contacts. Every cluster it touches is folded under the oldest primary, a new
secondary is added when the exact email/phone combination has not been seen
before, and the whole cluster is summarised for the caller.
"""

import logging
from typing import Iterable, List, Optional, Tuple

from contact_store import ContactStore
from db_models import ContactRecord, ContactResponse, LinkPrecedence
from exceptions import InvalidInput, StoreUnavailable

logger = logging.getLogger(__name__)


def normalize(value) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def collect_matches(store: ContactStore, email: str = None, phone: str = None) -> List[ContactRecord]:
    if not email and not phone:
        raise InvalidInput("Either email or phoneNumber must be provided")
    return store.find_by_email_or_phone(email, phone)


def _resolve_roots(store: ContactStore, root_ids: Iterable[int]) -> Tuple[List[ContactRecord], List[int]]:
    """
    Fetch the primaries behind ``root_ids``.

    A root that turns out to be a secondary itself is followed to its own
    primary; the ids of such intermediate records are returned alongside so
    their dependants can be relinked.
    """
    roots = {}
    intermediates = []
    seen = set()
    pending = set(root_ids)

    while pending:
        seen |= pending
        found = store.find_by_ids(pending)
        missing = pending - {record.id for record in found}
        if missing:
            raise StoreUnavailable(f"contacts link to missing primaries: {sorted(missing)}")

        pending = set()
        for record in found:
            if record.is_primary:
                roots[record.id] = record
            else:
                intermediates.append(record.id)
                if record.linkedId not in seen:
                    pending.add(record.linkedId)

    if not roots:
        raise StoreUnavailable(f"contacts form a link cycle: {sorted(set(intermediates))}")
    return sorted(roots.values(), key=lambda record: record.sort_key), intermediates


def reconcile_clusters(store: ContactStore, matches: List[ContactRecord]) -> Tuple[ContactRecord, List[int]]:
    """
    Pick the canonical primary for ``matches`` and fold every other cluster
    under it.

    Returns the main primary and the ids of the primaries demoted by this
    call. Secondaries of a demoted primary are repointed at the main primary
    so that no chain is ever deeper than one link.
    """
    roots, intermediates = _resolve_roots(store, {record.root_id for record in matches})
    main_primary = roots[0]

    demoted = []
    for root in roots[1:]:
        store.update(root.id, LinkPrecedence.SECONDARY, main_primary.id)
        store.relink_secondaries(root.id, main_primary.id)
        demoted.append(root.id)

    for contact_id in intermediates:
        store.relink_secondaries(contact_id, main_primary.id)

    if demoted:
        logger.info("Merged primaries %s into %d", demoted, main_primary.id)
    return main_primary, demoted


def synthesize_record(store: ContactStore, email: Optional[str], phone: Optional[str],
                      main_primary: ContactRecord) -> Optional[ContactRecord]:
    # absent fields do not constrain the lookup, so a single-field
    # observation that matched anything never creates a record
    if store.find_exact(email, phone):
        return None

    contact = store.create(email, phone, LinkPrecedence.SECONDARY, main_primary.id)
    logger.info("Created secondary contact %d under %d", contact.id, main_primary.id)
    return contact


def _distinct(values) -> List[str]:
    result = []
    for value in values:
        if value and value not in result:
            result.append(value)
    return result


def aggregate_response(store: ContactStore, main_primary: ContactRecord) -> ContactResponse:
    cluster = store.find_cluster(main_primary.id)
    primary = next((c for c in cluster if c.id == main_primary.id), main_primary)
    secondaries = sorted(
        (c for c in cluster if c.id != main_primary.id),
        key=lambda record: record.sort_key,
    )
    ordered = [primary] + secondaries

    return ContactResponse(
        primaryContactId=main_primary.id,
        emails=_distinct(c.email for c in ordered),
        phoneNumbers=_distinct(c.phoneNumber for c in ordered),
        secondaryContactIds=[c.id for c in secondaries if not c.is_primary],
    )


def identify(database, email: str = None, phone: str = None) -> ContactResponse:
    """
    Resolve one observation to its canonical contact.

    Runs entirely inside one write transaction on ``database`` so that
    concurrent calls touching the same identities cannot interleave. Raises
    InvalidInput before touching the store when neither field is given.
    """
    email, phone = normalize(email), normalize(phone)
    if not email and not phone:
        raise InvalidInput("Either email or phoneNumber must be provided")

    with database.transaction() as store:
        matches = collect_matches(store, email, phone)

        if not matches:
            contact = store.create(email, phone, LinkPrecedence.PRIMARY)
            logger.info("Created primary contact %d", contact.id)
            return ContactResponse(
                primaryContactId=contact.id,
                emails=[email] if email else [],
                phoneNumbers=[phone] if phone else [],
                secondaryContactIds=[],
            )

        main_primary, _ = reconcile_clusters(store, matches)
        synthesize_record(store, email, phone, main_primary)
        return aggregate_response(store, main_primary)
