"""
Pydantic response models for the API.

Optional fields default to None so that partial responses are valid when
database rows have NULL columns.  Field() descriptions and examples feed the
OpenAPI docs.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


# ── Hierarchy models ──────────────────────────────────────────────────────────

class TitleOut(BaseModel):
    """A CFR title (depth-0 node)."""
    number: str | None = Field(None, description="Title number", examples=["4"])
    node_name: str | None = Field(None, description="Title name", examples=["Accounts"])


class NavNodeOut(BaseModel):
    """A navigation tree node with its ordered children."""
    id: str = Field(..., description="Unique node ID", examples=["title-4"])
    type: str = Field(..., description="Level type (title, chapter, part, ...)", examples=["title"])
    number: str = Field(..., description="Number within the level", examples=["4"])
    name: str = Field(..., description="Node heading", examples=["Accounts"])
    path: str = Field(..., description="Browse path of the node", examples=["/browse/title=4"])
    expanded: bool = Field(False, description="Whether the node is shown expanded")
    has_children: bool = Field(False, description="True when the node has child rows, fetched or not")
    children: list[NavNodeOut] = Field(default_factory=list, description="Ordered child nodes")


class NodeOut(BaseModel):
    """A stored hierarchy row."""
    id: str = Field(..., description="Unique node ID", examples=["part-21"])
    parent: str | None = Field(None, description="Parent node ID", examples=["subchapter-B"])
    citation: str | None = Field(None, description="Formal citation", examples=["4 CFR Part 21"])
    link: str | None = Field(None, description="Path form of the node", examples=["/title=4/chapter=I/subchapter=B/part=21"])
    node_type: str | None = Field(None, description="'structure' or 'content'", examples=["structure"])
    level_type: str | None = Field(None, description="Level type", examples=["part"])
    number: str | None = Field(None, description="Number within the level", examples=["21"])
    node_name: str | None = Field(None, description="Node heading", examples=["Bid Protest Regulations"])
    depth: int | None = Field(None, description="Distance from the title (titles are 0)", examples=[3])
    num_corrections: int | None = Field(None, description="Number of recorded corrections", examples=[2])
    metadata: dict[str, Any] | None = Field(None, description="Free-form node metadata")


class BreadcrumbOut(BaseModel):
    """One ancestor link from the title down to the requested node."""
    id: str = Field(..., description="Node ID")
    label: str = Field(..., description="Display label", examples=["Part 21"])
    name: str | None = Field(None, description="Node heading")
    path: str = Field(..., description="Browse path", examples=["/browse/title=4/chapter=I"])


class RegulationOut(BaseModel):
    """A node with its text content, sorted children and ancestor trail."""
    nodeInfo: NodeOut
    content: list[str] = Field(default_factory=list, description="Content chunks in order")
    childNodes: list[NodeOut] = Field(default_factory=list, description="Direct children in sibling order")
    breadcrumbs: list[BreadcrumbOut] = Field(default_factory=list, description="Ancestors, outermost first")


# ── Correction models ─────────────────────────────────────────────────────────

class CorrectionOut(BaseModel):
    """A change-log entry for a node."""
    id: str = Field(..., description="Correction ID")
    node_id: str | None = Field(None, description="Corrected node ID")
    agency_id: str | None = Field(None, description="Responsible agency ID")
    title: int | None = Field(None, description="CFR title number", examples=[4])
    error_occurred: str | None = Field(None, description="Date the error occurred", examples=["2024-03-01"])
    error_corrected: str | None = Field(None, description="Date the error was corrected", examples=["2024-03-15"])
    correction_duration: int | None = Field(None, description="Days between occurrence and correction", examples=[14])
    corrective_action: str | None = Field(None, description="What was changed")
    citation: str | None = Field(None, description="Citation of the corrected node")
    node_name: str | None = Field(None, description="Heading of the corrected node")
    level_type: str | None = Field(None, description="Level type of the corrected node")
    number: str | None = Field(None, description="Number of the corrected node")
    agency_name: str | None = Field(None, description="Name of the responsible agency")


class CorrectionsResponse(BaseModel):
    """A list of corrections."""
    corrections: list[CorrectionOut]


class NamedCount(BaseModel):
    """A name with a count, used by the top-N analytics lists."""
    name: str | None = None
    count: int | None = None


class LongestCorrection(BaseModel):
    duration: int | None = Field(None, description="Correction duration in days")
    title: str = Field(..., description="Display title", examples=["Title 4"])


class CorrectionAnalyticsOut(BaseModel):
    """Correction statistics, optionally restricted to one year."""
    year: int | None = Field(None, description="Year filter applied, if any")
    topAgencies: list[NamedCount]
    topNodes: list[NamedCount]
    longestCorrections: list[LongestCorrection]
    correctionsByMonth: dict[str, int] = Field(..., description="YYYY-MM -> number of corrections")
    availableYears: list[int] = Field(..., description="Years with at least one correction, newest first")


# ── Search models ─────────────────────────────────────────────────────────────

class SectionRef(BaseModel):
    """The node a content chunk belongs to."""
    id: str
    levelType: str | None = None
    number: str | None = None
    name: str | None = None
    citation: str | None = None
    parent: str | None = None
    link: str | None = None


class SearchResultItem(BaseModel):
    """A single search hit: one content chunk."""
    id: str = Field(..., description="Content chunk ID")
    content: str = Field(..., description="Full chunk text")
    snippet: str | None = Field(None, description="Context snippet with <mark> highlights")
    chunkNumber: int = Field(..., description="Position of the chunk within its section")
    match_type: str = Field(..., description="'exact' or 'fulltext'", examples=["exact"])
    score: float | None = Field(None, description="BM25 relevance score (higher = more relevant); None for exact hits")
    section: SectionRef


class SearchResponse(BaseModel):
    """Merged exact and full-text search results."""
    query: str = Field(..., description="The search query as given")
    total: int = Field(..., description="Number of results returned")
    results: list[SearchResultItem]


# ── Agency models ─────────────────────────────────────────────────────────────

class AgencyOut(BaseModel):
    """An agency with its corpus statistics."""
    id: str = Field(..., description="Agency ID")
    parent_id: str | None = Field(None, description="Parent agency ID")
    name: str = Field(..., description="Agency name", examples=["Government Accountability Office"])
    short_name: str | None = Field(None, description="Abbreviation", examples=["GAO"])
    slug: str | None = Field(None, description="URL slug")
    num_cfr: int = Field(0, description="Number of CFR references")
    num_children: int = Field(0, description="Number of child agencies")
    num_sections: int = Field(0, description="Number of sections")
    num_words: int = Field(0, description="Number of words")
    num_corrections: int = Field(0, description="Number of corrections")


class AgencyReference(BaseModel):
    """A node referenced by an agency."""
    id: str = Field(..., description="Reference ID: <agency_id>_<node_id>")
    agency_id: str
    node_id: str
    ordinal: int = Field(..., description="Position in the reference list")
    node: NodeOut


class AgencyDetailOut(BaseModel):
    """An agency with its children, referenced nodes and ancestor chain."""
    agency: AgencyOut
    children: list[AgencyOut]
    references: list[AgencyReference]
    ancestors: list[AgencyOut] = Field(default_factory=list, description="Parent chain, outermost first")


class AgencyTotals(BaseModel):
    totalAgencies: int
    totalSections: int
    totalWords: int
    totalCorrections: int


class AgencyAnalyticsOut(BaseModel):
    """Totals and top-5 agency lists."""
    totalMetrics: AgencyTotals
    topAgenciesByCorrections: list[NamedCount]
    topAgenciesBySections: list[NamedCount]


# ── Error model ───────────────────────────────────────────────────────────────

class ErrorResponse(BaseModel):
    """Standard error response body."""
    error: str = Field(..., description="Error message", examples=["Agency not found"])
    detail: Any | None = Field(None, description="Additional detail, if any")
    status_code: int = Field(..., description="HTTP status code", examples=[404])


NavNodeOut.model_rebuild()
