#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Ilesta v0.1.0

Core assembly data structures: read index, overlap records, oriented
read-end nodes, overlap edges and unitigs.

Nodes are plain integers in an index-based arena. A read with dense id ``r``
owns two nodes, ``2 * r`` (traversed forward, leaving through its 3' end) and
``2 * r + 1`` (traversed as its reverse complement, leaving through its 5'
end). The complement of any node is ``node ^ 1``.

Author: Ilesta Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Tuple
import logging

logger = logging.getLogger(__name__)


# ============================================================================
#                           NODE ENCODING
# ============================================================================

END_3P = 0
END_5P = 1


def make_node(read_id: int, end: int) -> int:
    """Encode (read, end) as a node id."""
    return (read_id << 1) | end


def node_from_strand(read_id: int, strand: str) -> int:
    """Node of a read traversed on the given strand ('+' forward, '-' reverse)."""
    return make_node(read_id, END_3P if strand == '+' else END_5P)


def node_read(node: int) -> int:
    return node >> 1


def node_end(node: int) -> int:
    return node & 1


def node_strand(node: int) -> str:
    return '+' if node & 1 == END_3P else '-'


def complement(node: int) -> int:
    """Reverse-complement node (same read, opposite end)."""
    return node ^ 1


def flip_strand(strand: str) -> str:
    return '-' if strand == '+' else '+'


# ============================================================================
#                           READS
# ============================================================================

@dataclass(frozen=True)
class ReadInfo:
    """
    Read metadata known before sequences are loaded.

    Attributes:
        read_id: Dense integer id (position in the read index)
        name: Read name as it appears in the alignment and reads files
        length: Read length in bases
    """
    read_id: int
    name: str
    length: int


class ReadIndex:
    """
    Registry mapping read names to dense integer ids.

    Ids are assigned in insertion order and never reused, so they can be
    used directly as arena indices.
    """

    def __init__(self):
        self._reads: List[ReadInfo] = []
        self._ids: Dict[str, int] = {}

    @classmethod
    def from_reads(cls, reads: Iterable[Tuple[str, int]]) -> 'ReadIndex':
        index = cls()
        for name, length in reads:
            index.add(name, length)
        return index

    def add(self, name: str, length: int) -> int:
        """Register a read and return its id (existing id if already known)."""
        read_id = self._ids.get(name)
        if read_id is not None:
            known = self._reads[read_id].length
            if known != length:
                logger.warning(
                    f"Read {name} reported with conflicting lengths "
                    f"({known} vs {length}); keeping {known}"
                )
            return read_id
        read_id = len(self._reads)
        self._reads.append(ReadInfo(read_id=read_id, name=name, length=length))
        self._ids[name] = read_id
        return read_id

    def id_of(self, name: str) -> int:
        return self._ids[name]

    def get(self, read_id: int) -> ReadInfo:
        return self._reads[read_id]

    def name_of(self, read_id: int) -> str:
        return self._reads[read_id].name

    def length_of(self, read_id: int) -> int:
        return self._reads[read_id].length

    def __contains__(self, name: str) -> bool:
        return name in self._ids

    def __len__(self) -> int:
        return len(self._reads)

    def __iter__(self) -> Iterator[ReadInfo]:
        return iter(self._reads)


# ============================================================================
#                           OVERLAP RECORDS
# ============================================================================

class OverlapClass(Enum):
    """Geometric class of a pairwise alignment."""
    DOVETAIL_FORWARD = "dovetail_forward"    # query precedes target
    DOVETAIL_REVERSE = "dovetail_reverse"    # target precedes query
    QUERY_CONTAINED = "query_contained"
    TARGET_CONTAINED = "target_contained"
    INTERNAL = "internal"

    @property
    def is_dovetail(self) -> bool:
        return self in (OverlapClass.DOVETAIL_FORWARD, OverlapClass.DOVETAIL_REVERSE)


@dataclass
class OverlapRecord:
    """
    One pairwise alignment between two reads (a PAF row).

    Coordinates are 0-based half-open, target coordinates on the target's
    forward strand as in PAF. ``support`` is the number of raw alignments
    aggregated under this record's canonical pair once filtering is done.
    """
    query_name: str
    query_length: int
    query_start: int
    query_end: int
    strand: str
    target_name: str
    target_length: int
    target_start: int
    target_end: int
    match_length: int
    block_length: int
    mapq: int = 255
    line_no: int = 0
    support: int = 1
    overlap_class: Optional[OverlapClass] = None

    @property
    def percent_identity(self) -> float:
        """Residue matches over alignment block length, in percent."""
        if self.block_length <= 0:
            return 0.0
        return 100.0 * self.match_length / self.block_length

    @property
    def canonical_key(self) -> Tuple[str, str, str]:
        """Order-independent key of the oriented read pair."""
        if self.query_name <= self.target_name:
            return (self.query_name, self.target_name, self.strand)
        return (self.target_name, self.query_name, self.strand)

    def rank_key(self) -> Tuple[int, int, int]:
        """Total order used to pick the representative alignment (smaller wins)."""
        return (-self.block_length, -self.match_length, self.line_no)

    def target_coords(self) -> Tuple[int, int]:
        """Target start/end in the query's orientation."""
        if self.strand == '+':
            return self.target_start, self.target_end
        return (self.target_length - self.target_end,
                self.target_length - self.target_start)

    @property
    def mapped_length(self) -> int:
        """Longer of the two aligned spans."""
        b2, e2 = self.target_coords()
        return max(self.query_end - self.query_start, e2 - b2)

    def to_paf_line(self) -> str:
        fields = [
            self.query_name, self.query_length, self.query_start, self.query_end,
            self.strand,
            self.target_name, self.target_length, self.target_start, self.target_end,
            self.match_length, self.block_length, self.mapq,
        ]
        line = "\t".join(str(f) for f in fields)
        line += f"\tsp:i:{self.support}"
        if self.overlap_class is not None:
            line += f"\tcl:Z:{self.overlap_class.value}"
        return line


@dataclass(frozen=True)
class OverlapEntry:
    """
    Normalized dovetail overlap, the unit stored in the binary overlap file.

    The arc ``read_a(strand_a) -> read_b(strand_b)`` extends by ``ext_len_a``
    bases; its mirror ``read_b(~strand_b) -> read_a(~strand_a)`` extends by
    ``ext_len_b`` bases.
    """
    read_a: int
    strand_a: str
    read_b: int
    strand_b: str
    ext_len_a: int
    ext_len_b: int
    support: int
    overlap_len: int
    identity: float

    @property
    def orientation(self) -> int:
        """Bit 0: read_a is reverse, bit 1: read_b is reverse."""
        return (1 if self.strand_a == '-' else 0) | (2 if self.strand_b == '-' else 0)

    @staticmethod
    def strands_from_orientation(orientation: int) -> Tuple[str, str]:
        return ('-' if orientation & 1 else '+', '-' if orientation & 2 else '+')

    @classmethod
    def from_record(cls, record: OverlapRecord, reads: ReadIndex) -> 'OverlapEntry':
        """
        Lay out a classified dovetail record as an oriented arc.

        Args:
            record: Record whose ``overlap_class`` is a dovetail class
            reads: Read index used to resolve names to ids

        Returns:
            OverlapEntry for the arc and its mirror

        Raises:
            ValueError: If the record is not a dovetail
        """
        b1, e1, l1 = record.query_start, record.query_end, record.query_length
        b2, e2 = record.target_coords()
        l2 = record.target_length
        query_id = reads.id_of(record.query_name)
        target_id = reads.id_of(record.target_name)

        if record.overlap_class is OverlapClass.DOVETAIL_FORWARD:
            read_a, strand_a = query_id, '+'
            read_b, strand_b = target_id, record.strand
            ext_a = b1 - b2
            ext_b = (l2 - e2) - (l1 - e1)
        elif record.overlap_class is OverlapClass.DOVETAIL_REVERSE:
            read_a, strand_a = target_id, record.strand
            read_b, strand_b = query_id, '+'
            ext_a = b2 - b1
            ext_b = (l1 - e1) - (l2 - e2)
        else:
            raise ValueError(
                f"Cannot lay out non-dovetail overlap "
                f"{record.query_name}/{record.target_name} ({record.overlap_class})"
            )

        return cls(
            read_a=read_a,
            strand_a=strand_a,
            read_b=read_b,
            strand_b=strand_b,
            ext_len_a=ext_a,
            ext_len_b=ext_b,
            support=record.support,
            overlap_len=record.mapped_length,
            identity=record.percent_identity,
        )


# ============================================================================
#                           GRAPH ELEMENTS
# ============================================================================

@dataclass
class OverlapEdge:
    """
    Directed arc between two oriented read ends.

    Attributes:
        source: Source node id
        target: Target node id
        ext_len: Bases of the source read preceding the target in the layout
        overlap_len: Aligned span of the supporting overlap
        support: Number of raw alignments corroborating this overlap
        identity: Percent identity of the representative alignment
    """
    source: int
    target: int
    ext_len: int
    overlap_len: int
    support: int
    identity: float = 0.0


@dataclass
class UnitigMember:
    """Read placed in a unitig, with the span of the oriented read it contributes."""
    read_id: int
    read_name: str
    strand: str
    trim_start: int
    trim_end: int

    @property
    def span(self) -> int:
        return self.trim_end - self.trim_start


@dataclass
class Unitig:
    """
    Maximal non-branching path in the simplified overlap graph.

    Attributes:
        unitig_id: 1-based unitig number
        nodes: Ordered node ids along the path
        members: Reads with trim coordinates, in path order
        circular: Whether the path closes on itself
        sequence: Materialized sequence (filled after reads are loaded)
    """
    unitig_id: int
    nodes: List[int]
    members: List[UnitigMember] = field(default_factory=list)
    circular: bool = False
    sequence: Optional[str] = None

    @property
    def name(self) -> str:
        return f"utg{self.unitig_id:06d}{'c' if self.circular else 'l'}"

    @property
    def length(self) -> int:
        return sum(m.span for m in self.members)

    @property
    def n_reads(self) -> int:
        return len(self.members)

    @property
    def start_node(self) -> int:
        return self.nodes[0]

    @property
    def end_node(self) -> int:
        return self.nodes[-1]

# Ilesta v0.1.0
# Any usage is subject to this software's license.
