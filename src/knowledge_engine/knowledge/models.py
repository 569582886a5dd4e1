"""
Knowledge data model

Chunk, KnowledgeEntry and DuplicateGroup records shared by the chunker, the
embedding pipeline, the stores and the deduplication detector.
"""

import uuid
from enum import Enum
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional, Set


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class KnowledgeCategory(str, Enum):
    """Closed set of knowledge categories used by the assistant."""
    COMPANY_INFO = 'company-info'
    STRATEGY = 'strategy'
    FINANCIAL = 'financial'
    GOVERNANCE = 'governance'
    ESG = 'esg'
    HUMAN_CAPITAL = 'human-capital'
    EXPRESSION_PATTERN = 'expression-pattern'
    VALUES = 'values'


class SourceType(str, Enum):
    """Where a knowledge entry came from."""
    UPLOADED_DOCUMENT = 'uploaded-document'
    APPROVED_CHAT = 'approved-chat'
    MANUAL_ENTRY = 'manual-entry'
    LEARNING_PATTERN = 'learning-pattern'


class DetectionMethod(str, Enum):
    """Deduplication layer that matched a pair, strongest first."""
    EXACT = 'exact'
    SEMANTIC = 'semantic'
    FUZZY = 'fuzzy'

    @property
    def strength(self) -> int:
        return _METHOD_STRENGTH[self]

    @classmethod
    def strongest(cls, methods) -> 'DetectionMethod':
        return max(methods, key=lambda m: m.strength)


_METHOD_STRENGTH = {
    DetectionMethod.EXACT: 3,
    DetectionMethod.SEMANTIC: 2,
    DetectionMethod.FUZZY: 1,
}


@dataclass(frozen=True)
class Chunk:
    """
    A bounded span of a source document, sized for embedding.

    Attributes:
        chunk_id: Sequential identifier ("chunk-0", "chunk-1", ...)
        content: Exact slice of the source text, text[start_index:end_index]
        start_index: Character offset where the chunk starts
        end_index: Character offset where the chunk ends (exclusive)
        token_count: Estimated token count of content
    """
    chunk_id: str
    content: str
    start_index: int
    end_index: int
    token_count: int

    @property
    def index(self) -> int:
        return int(self.chunk_id.rsplit('-', 1)[-1])

    def to_dict(self) -> Dict[str, Any]:
        return {
            'chunk_id': self.chunk_id,
            'content': self.content,
            'start_index': self.start_index,
            'end_index': self.end_index,
            'token_count': self.token_count
        }


@dataclass
class KnowledgeEntry:
    """A unit of project knowledge with its embedding."""
    project_id: str
    content: str
    category: KnowledgeCategory = KnowledgeCategory.COMPANY_INFO
    embedding: Optional[List[float]] = None
    reliability: int = 50
    usage_count: int = 0
    version: int = 1
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    source_type: SourceType = SourceType.UPLOADED_DOCUMENT
    source_id: str = ''
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    last_used: Optional[datetime] = None
    previous_version: Optional[str] = None
    duplicate_group_id: Optional[str] = None
    is_representative: bool = False

    def __post_init__(self):
        self.category = KnowledgeCategory(self.category)
        self.source_type = SourceType(self.source_type)
        self.created_at = _as_utc(self.created_at)
        self.updated_at = _as_utc(self.updated_at)
        self.last_used = _as_utc(self.last_used)
        if not 0 <= self.reliability <= 100:
            raise ValueError(f"reliability must be within 0-100, got {self.reliability}")
        if self.usage_count < 0:
            raise ValueError(f"usage_count must be >= 0, got {self.usage_count}")
        if self.version < 1:
            raise ValueError(f"version must be >= 1, got {self.version}")

    @property
    def has_embedding(self) -> bool:
        return self.embedding is not None and len(self.embedding) > 0

    def copy(self, **changes) -> 'KnowledgeEntry':
        """Copy with changes applied; metadata and embedding are not shared with the original."""
        changes.setdefault('metadata', dict(self.metadata))
        if self.embedding is not None:
            changes.setdefault('embedding', list(self.embedding))
        return replace(self, **changes)

    def to_dict(self, include_embedding: bool = False) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'project_id': self.project_id,
            'content': self.content,
            'category': self.category.value,
            'reliability': self.reliability,
            'usage_count': self.usage_count,
            'version': self.version,
            'source_type': self.source_type.value,
            'source_id': self.source_id,
            'metadata': dict(self.metadata),
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
            'last_used': self.last_used.isoformat() if self.last_used else None,
            'previous_version': self.previous_version,
            'duplicate_group_id': self.duplicate_group_id,
            'is_representative': self.is_representative
        }
        if include_embedding:
            data['embedding'] = list(self.embedding) if self.embedding is not None else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'KnowledgeEntry':
        return cls(
            id=data['id'],
            project_id=data['project_id'],
            content=data['content'],
            category=data.get('category', KnowledgeCategory.COMPANY_INFO),
            embedding=data.get('embedding'),
            reliability=data.get('reliability', 50),
            usage_count=data.get('usage_count', 0),
            version=data.get('version', 1),
            source_type=data.get('source_type', SourceType.UPLOADED_DOCUMENT),
            source_id=data.get('source_id', ''),
            metadata=dict(data.get('metadata') or {}),
            created_at=_parse_datetime(data.get('created_at')) or utc_now(),
            updated_at=_parse_datetime(data.get('updated_at')) or utc_now(),
            last_used=_parse_datetime(data.get('last_used')),
            previous_version=data.get('previous_version'),
            duplicate_group_id=data.get('duplicate_group_id'),
            is_representative=bool(data.get('is_representative', False))
        )


@dataclass(frozen=True)
class DuplicateGroup:
    """
    A cluster of knowledge entries judged equivalent, with one representative.

    Groups are immutable once formed. A later detection run that touches the
    same entries creates a new group and the old one is marked superseded by
    the store.
    """
    project_id: str
    representative_knowledge_id: str
    duplicate_knowledge_ids: frozenset
    similarity_scores: Dict[str, float]
    detection_method: DetectionMethod
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=utc_now)
    superseded_at: Optional[datetime] = None
    superseded_by: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'duplicate_knowledge_ids', frozenset(self.duplicate_knowledge_ids))
        object.__setattr__(self, 'detection_method', DetectionMethod(self.detection_method))
        object.__setattr__(self, 'created_at', _as_utc(self.created_at))
        object.__setattr__(self, 'superseded_at', _as_utc(self.superseded_at))
        if self.representative_knowledge_id in self.duplicate_knowledge_ids:
            raise ValueError("representative_knowledge_id must not be listed as a duplicate")
        missing = self.duplicate_knowledge_ids - set(self.similarity_scores)
        if missing:
            raise ValueError(f"missing similarity scores for {sorted(missing)}")

    @property
    def is_active(self) -> bool:
        return self.superseded_at is None

    @property
    def member_ids(self) -> Set[str]:
        return {self.representative_knowledge_id} | set(self.duplicate_knowledge_ids)

    def supersede(self, superseded_by: Optional[str] = None) -> 'DuplicateGroup':
        return replace(self, superseded_at=utc_now(), superseded_by=superseded_by)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'project_id': self.project_id,
            'representative_knowledge_id': self.representative_knowledge_id,
            'duplicate_knowledge_ids': sorted(self.duplicate_knowledge_ids),
            'similarity_scores': dict(self.similarity_scores),
            'detection_method': self.detection_method.value,
            'created_at': self.created_at.isoformat(),
            'superseded_at': self.superseded_at.isoformat() if self.superseded_at else None,
            'superseded_by': self.superseded_by
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DuplicateGroup':
        return cls(
            id=data['id'],
            project_id=data['project_id'],
            representative_knowledge_id=data['representative_knowledge_id'],
            duplicate_knowledge_ids=frozenset(data.get('duplicate_knowledge_ids', [])),
            similarity_scores={k: float(v) for k, v in (data.get('similarity_scores') or {}).items()},
            detection_method=data['detection_method'],
            created_at=_parse_datetime(data.get('created_at')) or utc_now(),
            superseded_at=_parse_datetime(data.get('superseded_at')),
            superseded_by=data.get('superseded_by')
        )


def _parse_datetime(value) -> Optional[datetime]:
    if value is None or value == '':
        return None
    if not isinstance(value, datetime):
        value = datetime.fromisoformat(value)
    return _as_utc(value)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive timestamps are taken to be UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
