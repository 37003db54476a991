"""Composite fingerprinting utilities."""

from __future__ import annotations

from collections.abc import Mapping

from serde_msgspec import StructBaseStrict
from utils.hashing import DEFAULT_LONG_HASH, CacheKeyBuilder

FINGERPRINT_VERSION = 1


class FingerprintComponent(StructBaseStrict, frozen=True):
    """Single named component of a composite fingerprint."""

    name: str
    value: str


class CompositeFingerprint(StructBaseStrict, frozen=True):
    """Ordered set of named fingerprints with a canonical digest.

    Components are always kept sorted by name so the digest does not depend
    on the order they were supplied in.
    """

    version: int
    components: tuple[FingerprintComponent, ...]

    @classmethod
    def from_mapping(
        cls,
        components: Mapping[str, str],
        *,
        version: int = FINGERPRINT_VERSION,
    ) -> CompositeFingerprint:
        """Create a composite fingerprint from a name-to-fingerprint mapping.

        Returns
        -------
        CompositeFingerprint
            Composite fingerprint instance.
        """
        return cls(
            version=version,
            components=tuple(
                FingerprintComponent(name=name, value=value)
                for name, value in sorted(components.items())
            ),
        )

    def digest(self, *, algorithm: str = DEFAULT_LONG_HASH) -> str:
        """Return the long hash of the ordered component sequence.

        Returns
        -------
        str
            Hex digest for the fingerprint.
        """
        builder = CacheKeyBuilder(algorithm=algorithm)
        builder.add("version", self.version)
        builder.add(
            "components",
            [(component.name, component.value) for component in self.components],
        )
        return builder.build()


__all__ = ["FINGERPRINT_VERSION", "CompositeFingerprint", "FingerprintComponent"]
