"""Rendering of resolved package dependencies as a Graphviz digraph."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .apkindex import Package

ERROR_NODE = "❌ error"


def _quote(value: str) -> str:
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


def _attr_list(attrs: Dict[str, str]) -> str:
    if not attrs:
        return ""
    inner = ", ".join(f"{key}={_quote(value)}" for key, value in attrs.items())
    return f" [{inner}]"


@dataclass
class DotGraph:
    """A Graphviz graph whose nodes are identified by name.

    Adding a node that already exists merges the new attributes into it;
    edges are kept in the order they are added, duplicates included.
    """

    name: str = "images"
    directed: bool = True
    attributes: Dict[str, str] = field(default_factory=dict)
    nodes: Dict[str, Dict[str, str]] = field(default_factory=dict)
    edges: List[Tuple[str, str, Dict[str, str]]] = field(default_factory=list)

    def add_node(self, name: str, **kwargs: str) -> str:
        """Add a node, or merge attributes into an existing one; return its name."""
        self.nodes.setdefault(name, {}).update(kwargs)
        return name

    def add_edge(self, source: str, target: str, **kwargs: str) -> None:
        """Add an edge between two named nodes, adding the nodes if needed."""
        self.nodes.setdefault(source, {})
        self.nodes.setdefault(target, {})
        self.edges.append((source, target, dict(kwargs)))

    def edge_pairs(self) -> List[Tuple[str, str]]:
        """The edges as (source, target) pairs, in insertion order."""
        return [(source, target) for source, target, _ in self.edges]

    def to_string(self) -> str:
        """Render the graph in the DOT language."""
        kind = "digraph" if self.directed else "graph"
        arrow = "->" if self.directed else "--"
        lines = [f"{kind} {_quote(self.name)} {{"]
        lines.extend(f"  {key}={_quote(value)};" for key, value in self.attributes.items())
        lines.extend(
            f"  {_quote(name)}{_attr_list(attrs)};" for name, attrs in self.nodes.items()
        )
        lines.extend(
            f"  {_quote(source)} {arrow} {_quote(target)}{_attr_list(attrs)};"
            for source, target, attrs in self.edges
        )
        lines.append("}")
        return "\n".join(lines)

    def __str__(self) -> str:
        return self.to_string()


def pkgver(package: Package) -> str:
    """Return ``name-version`` for a package."""
    return f"{package.name}-{package.version}"


def link(args: Sequence[str], package_name: str) -> str:
    """Return the browser link focusing on a package plus the other focused ones."""
    others = [arg for arg in args if arg != package_name]
    url = "/?node=" + package_name
    if others:
        url += "&node=" + "&node=".join(others)
    return url


def _wrapped(error: BaseException) -> Optional[BaseException]:
    return error.__cause__


def _grouped(error: BaseException) -> Optional[Sequence[BaseException]]:
    members = getattr(error, "exceptions", None)
    if isinstance(members, (list, tuple)):
        return members
    return None


def _can_unwrap(error: BaseException) -> bool:
    return _wrapped(error) is not None or _grouped(error) is not None


def _error_to_node(error: BaseException) -> Tuple[str, str]:
    """Map a resolution error to a node name and an edge label.

    Errors with a ``constraint`` string are drawn as that constraint; errors
    with a ``package`` are drawn as that package, their edge labelled by an
    ``edge_label`` attribute when present.
    """
    constraint = getattr(error, "constraint", None)
    if isinstance(constraint, str):
        return constraint, "solving constraint"
    package = getattr(error, "package", None)
    if package is not None:
        return pkgver(package), str(getattr(error, "edge_label", "") or "")
    return "", ""


def _make_node(graph: DotGraph, error: BaseException, parent: str) -> str:
    name, label = _error_to_node(error)
    if not name:
        if _can_unwrap(error):
            return parent
        name = "❌ " + str(error)
    graph.add_node(name)
    if label:
        graph.add_edge(parent, name, label=label)
    else:
        graph.add_edge(parent, name)
    return name


def walk_errors(graph: DotGraph, error: BaseException, parent: str) -> None:
    """Draw an error and everything it wraps as a tree hanging from ``parent``.

    A plain wrapper (one with a cause or grouped exceptions but nothing of
    its own to show) is skipped and its children hang from ``parent``.
    """
    node = _make_node(graph, error, parent)
    cause = _wrapped(error)
    if cause is not None:
        walk_errors(graph, cause, node)
        return
    for member in _grouped(error) or ():
        walk_errors(graph, member, node)


def _before(value: str, sep: str) -> Optional[str]:
    head, found, _ = value.partition(sep)
    return head if found else None


def render_graph(
    config_file: str,
    requested: Iterable[str],
    packages: Sequence[Package],
    args: Sequence[str],
    web: bool,
    span: bool,
    resolve_error: Optional[BaseException],
) -> DotGraph:
    """Build the dependency graph of a resolved package list.

    ``requested`` holds the packages named in the configuration, ``args`` the
    packages to draw first. With ``span`` each target gets at most one
    incoming dependency edge; with ``web`` nodes carry browser links.
    Raises ValueError when a name in ``args`` is not among ``packages``.
    """
    dmap = {pkg.name: pkg.dependencies for pkg in packages}
    pmap = {pkg.name: pkg.provides for pkg in packages}
    pkg_map = {pkg.name: pkg for pkg in packages}

    edges: Set[str] = set()
    deps: Set[str] = set()

    graph = DotGraph(name="images", directed=True, attributes={"rankdir": "LR"})
    graph.add_node(config_file)

    for wanted in requested:
        graph.add_node(wanted)
        graph.add_edge(config_file, wanted)
        base = _before(wanted, "~")
        if base is not None:
            graph.add_node(base)
            graph.add_edge(wanted, base)
            deps.add(base)
        else:
            deps.add(wanted)

    def lookup(name: str) -> Package:
        try:
            return pkg_map[name]
        except KeyError:
            raise ValueError(f"package not found: {name!r}") from None

    def render_deps(pkg: Package) -> None:
        attrs = {"label": pkgver(pkg)}
        if web:
            attrs["URL"] = link(args, pkg.name)
        node = graph.add_node(pkg.name, **attrs)
        for dep in dmap.get(pkg.name, []):
            base = _before(dep, "~")
            if base is not None:
                dep = base
            if web and ":" not in dep:
                graph.add_node(dep, URL=link(args, dep))
            else:
                graph.add_node(dep)
            if (dep not in edges or not span) and pkg.name != dep:
                # Self edges are skipped so cycles render sensibly.
                graph.add_edge(node, dep)
                edges.add(dep)
            deps.add(dep)

    def render_provs(pkg: Package) -> None:
        node = graph.add_node(pkg.name, label=pkgver(pkg))
        for prov in pmap.get(pkg.name, []):
            if prov not in deps:
                base = _before(prov, "=")
                if base is None:
                    base = _before(prov, "~")
                if base is not None and base in deps:
                    graph.add_node(base, shape="rect")
                    graph.add_edge(base, node)
                continue
            graph.add_node(prov)
            if pkg.name not in edges or not span:
                graph.add_edge(prov, node)
                edges.add(pkg.name)

    for render in (render_deps, render_provs):
        done: Set[str] = set()
        for arg in args:
            render(lookup(arg))
            done.add(arg)
        for pkg in packages:
            if pkg.name not in done:
                render(pkg)

    if resolve_error is not None:
        graph.add_node(ERROR_NODE)
        walk_errors(graph, resolve_error, ERROR_NODE)

    return graph