"""
Product alias resolution

Order items and catalogue rows do not always carry the same identifier for
one product: an item may have only a title while the listing has a SKU.
A disjoint-set links the identifiers seen during one analysis run so
catalogue stock can be attached to the product keys used for sales.
Built per request, never persisted.
"""
from typing import Dict, Iterable, List, Optional, Tuple


def sales_node(product_key: str) -> str:
    return f"key:{product_key.lower()}"


def catalogue_node(product_id: str) -> str:
    return f"pid:{product_id}"


class DisjointSet:
    """Union-find over string nodes with path compression."""

    def __init__(self):
        self._parent: Dict[str, str] = {}

    def __contains__(self, node: str) -> bool:
        return node in self._parent

    def add(self, node: str) -> str:
        if node not in self._parent:
            self._parent[node] = node
        return node

    def find(self, node: str) -> str:
        self.add(node)
        root = node
        while self._parent[root] != root:
            root = self._parent[root]
        # Point every node on the path straight at the root
        while self._parent[node] != root:
            self._parent[node], node = root, self._parent[node]
        return root

    def union(self, first: str, second: str) -> str:
        """Merge the two sets; the root of `first` stays the root."""
        root1 = self.find(first)
        root2 = self.find(second)
        if root1 != root2:
            self._parent[root2] = root1
        return root1


class ProductAliasResolver:
    """
    Links sales product keys, catalogue product ids and SKUs.

    Only structured identifiers (product id, SKU) are ever merged. A title
    is looked up directly but never unioned, so two different products
    that share a title stay apart.
    """

    def __init__(self):
        self._sets = DisjointSet()
        self._sales_keys: Dict[str, None] = {}
        self._by_root: Optional[Dict[str, List[str]]] = None

    def add_sale(self, product_key: str, product_id: Optional[str] = None):
        """Register an aggregate row's product key (and its catalogue id, if any)."""
        key = product_key.lower()
        node = self._sets.add(sales_node(key))
        self._sales_keys.setdefault(key, None)
        if product_id:
            self._sets.union(node, catalogue_node(product_id))
        self._by_root = None

    def add_listing(self, product_id: Optional[str], sku: Optional[str]):
        """Register a catalogue row: its id and SKU name the same product."""
        if product_id and sku:
            self._sets.union(catalogue_node(product_id), sales_node(sku))
            self._by_root = None

    def product_keys_for(
        self,
        product_id: Optional[str] = None,
        sku: Optional[str] = None,
        title: Optional[str] = None,
    ) -> List[str]:
        """Sales product keys that a catalogue row resolves to, best-first."""
        keys, _ = self.resolve(product_id, sku, title)
        return keys

    def resolve(
        self,
        product_id: Optional[str] = None,
        sku: Optional[str] = None,
        title: Optional[str] = None,
    ) -> Tuple[List[str], bool]:
        """(product keys, matched on a SKU or catalogue id rather than a bare title)"""
        candidates = []
        if sku:
            candidates.append((sales_node(sku), True))
        if product_id:
            candidates.append((catalogue_node(product_id), True))
        if not sku and title:
            candidates.append((sales_node(title), False))

        for node, structured in candidates:
            if node in self._sets:
                keys = self._groups().get(self._sets.find(node))
                if keys:
                    return list(keys), structured
        return [], False

    def _groups(self) -> Dict[str, List[str]]:
        if self._by_root is None:
            groups: Dict[str, List[str]] = {}
            for key in self._sales_keys:
                groups.setdefault(self._sets.find(sales_node(key)), []).append(key)
            self._by_root = groups
        return self._by_root


def build_alias_resolver(sales: Iterable, listings: Iterable) -> ProductAliasResolver:
    """
    sales: rows with product_key / product_id (aggregate rows, revenue order).
    listings: rows with product_id / sku (inventory items).
    """
    resolver = ProductAliasResolver()
    for row in sales:
        resolver.add_sale(row.product_key, getattr(row, "product_id", None))
    for item in listings:
        resolver.add_listing(item.product_id, item.sku)
    return resolver
