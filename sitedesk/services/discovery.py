"""
Contact discovery from classified documents.

Names and companies the classifier extracted (or the supervisor corrected)
are aggregated so they can be offered as new contacts and subcontractors.
Anything already on file, compared case-insensitively, is left out.
"""
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from ..schemas.documents import (
    DiscoveredSubcontractor,
    DiscoveredWorker,
    DocumentStatus,
    ReceivedDocument,
    effective_metadata,
)
from ..schemas.projects import Contact, Subcontractor


def _key(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def _later(a: Optional[datetime], b: Optional[datetime]) -> Optional[datetime]:
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b)


def _live(documents: Iterable[ReceivedDocument]) -> List[ReceivedDocument]:
    return [d for d in documents if d.status != DocumentStatus.rejected.value]


def discover_workers(documents: Iterable[ReceivedDocument], contacts: Iterable[Contact]) -> List[DiscoveredWorker]:
    known = {_key(c.name) for c in contacts}
    found: Dict[str, DiscoveredWorker] = {}
    for doc in _live(documents):
        meta = effective_metadata(doc.ai_extracted_data)
        key = _key(meta.worker_name)
        if not key or key in known:
            continue
        worker = found.get(key)
        if worker is None:
            worker = found[key] = DiscoveredWorker(name=meta.worker_name.strip())
        worker.document_count += 1
        worker.last_seen = _later(worker.last_seen, doc.received_at)
        if not worker.company_name and meta.company_name:
            worker.company_name = meta.company_name.strip()
        email = (doc.ai_extracted_data or {}).get("workerEmail")
        if not worker.email and email:
            worker.email = email
    return sorted(found.values(), key=lambda w: (-w.document_count, w.name.lower()))


def discover_subcontractors(documents: Iterable[ReceivedDocument], subcontractors: Iterable[Subcontractor]) -> List[DiscoveredSubcontractor]:
    known = {_key(s.company_name) for s in subcontractors}
    found: Dict[str, DiscoveredSubcontractor] = {}
    for doc in _live(documents):
        meta = effective_metadata(doc.ai_extracted_data)
        key = _key(meta.company_name)
        if not key or key in known:
            continue
        sub = found.get(key)
        if sub is None:
            sub = found[key] = DiscoveredSubcontractor(company_name=meta.company_name.strip())
        sub.document_count += 1
        sub.last_seen = _later(sub.last_seen, doc.received_at)
        name = (meta.worker_name or "").strip()
        if name and name not in sub.worker_names:
            sub.worker_names.append(name)
    return sorted(found.values(), key=lambda s: (-s.document_count, s.company_name.lower()))


def count_by_subcontractor(documents: Iterable[ReceivedDocument], subcontractors: Iterable[Subcontractor]) -> Dict[str, int]:
    """Document count per subcontractor id, matched on the effective company name."""
    ids_by_name = {_key(s.company_name): s.id for s in subcontractors}
    counts = {sub_id: 0 for sub_id in ids_by_name.values()}
    for doc in _live(documents):
        sub_id = ids_by_name.get(_key(effective_metadata(doc.ai_extracted_data).company_name))
        if sub_id is not None:
            counts[sub_id] += 1
    return counts
