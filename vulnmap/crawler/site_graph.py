# vulnmap/crawler/site_graph.py
"""In-memory model of the discovered site"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple

from ..errors import GraphFrozenError


class PageStatus(Enum):
    """Fetch outcome of a URL taken from the frontier"""
    OK = "ok"
    UNREACHABLE = "unreachable"
    EXCLUDED_BY_SCOPE = "excluded-by-scope"
    EXCLUDED_BY_DEPTH = "excluded-by-depth"


class StopReason(Enum):
    """Why the crawl stopped"""
    EXHAUSTED = "exhausted"
    MAX_PAGES = "max_pages"
    TIME_BUDGET = "time_budget"
    CANCELLED = "cancelled"
    ROOT_UNREACHABLE = "root_unreachable"


@dataclass(frozen=True)
class InputDescriptor:
    name: str
    type: str = "text"
    value: str = ""

    def to_dict(self) -> dict:
        return {"name": self.name, "type": self.type}


@dataclass(frozen=True)
class FormDescriptor:
    action: str
    method: str = "get"
    inputs: Tuple[InputDescriptor, ...] = ()

    @property
    def input_names(self) -> Tuple[str, ...]:
        return tuple(inp.name for inp in self.inputs)

    def inputs_of_type(self, *types: str) -> List[InputDescriptor]:
        return [inp for inp in self.inputs if inp.type in types]

    def to_dict(self) -> dict:
        return {
            "action": self.action,
            "method": self.method,
            "inputs": [inp.to_dict() for inp in self.inputs],
        }


@dataclass
class PageNode:
    """A fetched page. Only its own parse may append links and forms."""
    url: str
    depth: int
    status: PageStatus = PageStatus.OK
    http_status: Optional[int] = None
    content_type: str = ""
    error: Optional[str] = None
    links: List[str] = field(default_factory=list)
    forms: List[FormDescriptor] = field(default_factory=list)
    _frozen: bool = field(default=False, repr=False, compare=False)

    def add_link(self, url: str):
        self._check_mutable()
        if url not in self.links:
            self.links.append(url)

    def add_form(self, form: FormDescriptor):
        self._check_mutable()
        if form not in self.forms:
            self.forms.append(form)

    def freeze(self):
        self.links = tuple(self.links)
        self.forms = tuple(self.forms)
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def has_password_input(self) -> bool:
        return any(form.inputs_of_type("password") for form in self.forms)

    def _check_mutable(self):
        if self._frozen:
            raise GraphFrozenError(f"Page node {self.url} is frozen")

    def to_dict(self) -> dict:
        data = {
            "url": self.url,
            "depth": self.depth,
            "status": self.status.value,
            "links": list(self.links),
            "forms": [form.to_dict() for form in self.forms],
        }
        if self.http_status is not None:
            data["http_status"] = self.http_status
        if self.error:
            data["error"] = self.error
        return data


class SiteGraph:
    """
    Mapping of normalized URL to PageNode.

    Populated by a single crawler, then frozen and handed to the probe
    modules as a read-only snapshot. Links to URLs that have no node
    (out of scope or beyond the depth limit) are left dangling.
    """

    def __init__(self, root_url: str):
        self.root_url = root_url
        self._nodes: Dict[str, PageNode] = {}
        self.excluded: Dict[str, PageStatus] = {}
        self.redirects: Dict[str, str] = {}
        self.stop_reason: Optional[StopReason] = None
        self._frozen = False

    # -- mutation (crawl phase only) -------------------------------------

    def add_node(self, node: PageNode):
        self._check_mutable()
        if node.url in self._nodes:
            raise ValueError(f"Duplicate page node for {node.url}")
        self._nodes[node.url] = node

    def record_excluded(self, url: str, status: PageStatus):
        self._check_mutable()
        self.excluded.setdefault(url, status)

    def record_redirect(self, requested_url: str, final_url: str):
        self._check_mutable()
        self.redirects[requested_url] = final_url

    def rebase(self, root_url: str):
        """Move the root after the root URL itself redirected"""
        self._check_mutable()
        self.root_url = root_url

    def freeze(self, stop_reason: Optional[StopReason] = None):
        if self._frozen:
            return
        if stop_reason is not None:
            self.stop_reason = stop_reason
        for node in self._nodes.values():
            node.freeze()
        self._frozen = True

    def _check_mutable(self):
        if self._frozen:
            raise GraphFrozenError("Site graph is frozen")

    # -- read access ------------------------------------------------------

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def partial(self) -> bool:
        return self.stop_reason not in (None, StopReason.EXHAUSTED)

    def get(self, url: str) -> Optional[PageNode]:
        return self._nodes.get(url)

    def urls(self) -> List[str]:
        return [node.url for node in self.nodes()]

    def nodes(self, status: Optional[PageStatus] = None) -> List[PageNode]:
        """Nodes ordered by depth then URL, optionally filtered by status"""
        nodes = sorted(self._nodes.values(), key=lambda n: (n.depth, n.url))
        if status is not None:
            nodes = [n for n in nodes if n.status == status]
        return nodes

    def forms(self) -> Iterator[Tuple[PageNode, FormDescriptor]]:
        """Every (page, form) pair in graph order"""
        for node in self.nodes(PageStatus.OK):
            for form in node.forms:
                yield node, form

    def __contains__(self, url: str) -> bool:
        return url in self._nodes

    def __iter__(self) -> Iterator[PageNode]:
        return iter(self.nodes())

    def __len__(self) -> int:
        return len(self._nodes)

    def to_dict(self) -> Dict[str, dict]:
        """Site map keyed by URL, in graph order"""
        return {node.url: node.to_dict() for node in self.nodes()}

    def summary(self) -> dict:
        return {
            "root": self.root_url,
            "pages": len(self._nodes),
            "reachable": len(self.nodes(PageStatus.OK)),
            "unreachable": len(self.nodes(PageStatus.UNREACHABLE)),
            "forms": sum(1 for _ in self.forms()),
            "excluded": len(self.excluded),
            "stop_reason": self.stop_reason.value if self.stop_reason else None,
            "partial": self.partial,
        }
