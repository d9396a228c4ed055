from __future__ import annotations

from dataclasses import dataclass, field

from .content import Document, TaxonomyRef


@dataclass
class TaxonomyEntry:
    slug: str
    label: str
    posts: list[Document] = field(default_factory=list)


@dataclass
class Taxonomies:
    tags: dict[str, TaxonomyEntry] = field(default_factory=dict)
    categories: dict[str, TaxonomyEntry] = field(default_factory=dict)


def add_member(mapping: dict[str, TaxonomyEntry], ref: TaxonomyRef, doc: Document) -> None:
    entry = mapping.get(ref.slug)
    if entry is None:
        entry = mapping[ref.slug] = TaxonomyEntry(slug=ref.slug, label=ref.label)
    entry.posts.append(doc)


def build_taxonomies(documents: list[Document]) -> Taxonomies:
    taxonomies = Taxonomies()
    for doc in documents:
        for tag in doc.tags:
            add_member(taxonomies.tags, tag, doc)
        for category in doc.categories:
            add_member(taxonomies.categories, category, doc)
    return taxonomies


def sorted_entries(mapping: dict[str, TaxonomyEntry]) -> list[TaxonomyEntry]:
    return sorted(mapping.values(), key=lambda entry: (-len(entry.posts), entry.label.lower(), entry.label))
