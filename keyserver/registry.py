"""Key registry: the resolved slug to link mapping served by the app."""

import logging
from collections.abc import Iterable, Mapping
from types import MappingProxyType

from .config import Settings
from .links import LinkTemplate, build_vless_link
from .resolver import RawEntry, resolve, sanitize
from .sources import collect_entries, load_link_template

logger = logging.getLogger(__name__)

EXAMPLE_UUID = "e4392413-7142-4a95-a934-f084649b45e7"
EXAMPLE_TAG = "example"


class KeyRegistry:
    """Immutable slug to link lookup built once at startup."""

    def __init__(self, links: Mapping[str, str], template: LinkTemplate):
        """Initialize registry.

        Args:
            links: Resolved slug to link mapping
            template: Template used to generate links for user records
        """
        self.template = template
        self._links = MappingProxyType(dict(links))

    @classmethod
    def from_entries(
        cls, entries: Iterable[RawEntry], template: LinkTemplate | None = None
    ) -> "KeyRegistry":
        """Resolve entries, falling back to a single example key when empty."""
        if template is None:
            template = LinkTemplate()

        links = dict(resolve(entries, template))
        if not links:
            slug = sanitize(f"{template.slug_prefix}{EXAMPLE_TAG}")
            links[slug] = build_vless_link(EXAMPLE_UUID, template, EXAMPLE_TAG)
            logger.warning(f"No keys loaded, serving example key as '{slug}'")

        return cls(links, template)

    @classmethod
    def from_settings(cls, settings: Settings) -> "KeyRegistry":
        """Read every configured source and build the registry."""
        template = load_link_template(settings)
        registry = cls.from_entries(collect_entries(settings), template)
        logger.info(f"Key registry ready with {len(registry)} key(s)")
        return registry

    @property
    def links(self) -> Mapping[str, str]:
        return self._links

    def get_link(self, slug: str) -> str | None:
        return self._links.get(slug)

    def has(self, slug: str) -> bool:
        return slug in self._links

    def list_slugs(self) -> list[str]:
        """Return all bound slugs sorted alphabetically."""
        return sorted(self._links)

    def __len__(self) -> int:
        return len(self._links)
