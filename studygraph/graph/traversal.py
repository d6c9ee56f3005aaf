"""
Related-concept traversal.

Breadth-first walk from a seed concept over concept-to-concept edges.

EDGES FOLLOWED
--------------
At each node, ``related_to`` edges are expanded first, then
``prerequisite_for`` edges, both in stored order and in both directions.
Each step is labelled for the result path:

- ``related_to X``               (either direction)
- ``prerequisite_for X``         (this node is a prerequisite for X)
- ``X is_prerequisite_for this`` (X is a prerequisite for this node)

VISITING
--------
A concept is enqueued at most once; the visited set is seeded with the
seed concept, so the first path found wins and cycles terminate. Nodes
deeper than the requested depth, and endpoints that are not concepts,
are dropped without being expanded.

USAGE
-----
    >>> walker = ConceptWalker(graph)
    >>> [r.concept.name for r in walker.walk("Vectors", depth=2)]
    ['Matrices', 'Linear Maps']
"""

from collections import deque
from typing import Deque, List, Set, Tuple

from .results import RelatedConcept
from .types import KnowledgeGraph

CONCEPT = 'concept'


class ConceptWalker:
    """Bounded BFS over ``related_to`` and ``prerequisite_for`` edges."""

    def __init__(self, graph: KnowledgeGraph):
        self.graph = graph

    def _neighbours(self, name: str) -> List[Tuple[str, str]]:
        """(next concept name, step label) pairs in expansion order."""
        steps = []
        for relation in self.graph.relations:
            if relation.relation_type != 'related_to':
                continue
            if relation.source == name:
                steps.append((relation.target, f"related_to {relation.target}"))
            elif relation.target == name:
                steps.append((relation.source, f"related_to {relation.source}"))

        for relation in self.graph.relations:
            if relation.relation_type != 'prerequisite_for':
                continue
            if relation.source == name:
                steps.append((relation.target, f"prerequisite_for {relation.target}"))
            elif relation.target == name:
                steps.append((relation.source, f"{relation.source} is_prerequisite_for this"))
        return steps

    def walk(self, seed: str, depth: int = 1) -> List[RelatedConcept]:
        """
        Collect concepts within ``depth`` steps of ``seed``.

        Args:
            seed: Name of the starting concept (not reported)
            depth: Maximum number of steps

        Returns:
            Related concepts ordered by depth, stable by discovery order
        """
        visited: Set[str] = {seed}
        queue: Deque[Tuple[str, int, List[str]]] = deque([(seed, 0, [])])
        found: List[RelatedConcept] = []

        while queue:
            name, current_depth, path = queue.popleft()
            if current_depth > depth:
                continue

            concept = self.graph.get(name, CONCEPT)
            if concept is None:
                continue

            if name != seed:
                found.append(RelatedConcept(
                    concept=concept,
                    path=list(path),
                    depth=current_depth,
                    courses=self.graph.sources(name, 'covers', 'course'),
                    resources=self.graph.sources(name, 'helps_with', 'resource'),
                ))

            for next_name, label in self._neighbours(name):
                if next_name in visited:
                    continue
                visited.add(next_name)
                queue.append((next_name, current_depth + 1, path + [label]))

        found.sort(key=lambda r: r.depth)
        return found

