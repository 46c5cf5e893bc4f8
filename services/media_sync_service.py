"""
Media Synchronizer.

Keeps a product's gallery (`product_images`) equal to the set of image
files that currently exist for its SKU.

Per SKU, under an exclusive lock:
    1. Resolve candidates: the preferred hint first (if it resolves), then
       the gallery_files hints from the product attributes, then every
       image file in <media_root>/<sku>/ in name order.
    2. Reconcile: delete rows whose url is not a candidate, insert missing
       candidates, rewrite idx to candidate order.
    3. Primary image: a resolved preferred hint always becomes
       products.image_url; otherwise the first candidate fills it only when
       it is empty.

Local hints must resolve strictly inside media_root. The check is done on
the resolved path, so "../" segments and symlinks pointing elsewhere are
rejected. Remote http(s) URLs are taken as-is.
"""

from pathlib import Path
from typing import Any, Optional, Union
import structlog

from config import get_supabase_client, settings
from exceptions import DatabaseError
from models.imports import MediaSyncResult
from models.product import ProductImageRecord, ProductRecord
from services.lock_service import LockRegistry, get_lock_registry, stable_lock_key
from utils.media import is_image_name, is_remote_url

logger = structlog.get_logger(__name__)

MEDIA_LOCK_NAMESPACE = "media"

# Extra gallery hints: a list, or a pipe-delimited string from a CSV column
GALLERY_ATTRIBUTE = "gallery_files"


class MediaSyncService:
    """
    Per-SKU gallery reconciliation.

    Core methods:
    - sync_media: Lock, resolve, reconcile, update primary image
    - resolve_candidates: Ordered candidate URLs for a SKU
    - resolve_path: One hint → public URL, or None if it is not usable
    """

    def __init__(
        self,
        media_root: Optional[Union[str, Path]] = None,
        base_url: Optional[str] = None,
        locks: Optional[LockRegistry] = None
    ):
        self.db = get_supabase_client()
        self.media_root = Path(media_root or settings.media_root).resolve()
        self.base_url = (base_url or settings.media_base_url).rstrip("/")
        self.locks = locks or get_lock_registry()

    # ===================
    # ENTRY POINT
    # ===================

    def sync_media(self, sku: str, preferred_url: Optional[str] = None) -> MediaSyncResult:
        """
        Synchronize the gallery of one SKU.

        Safe to retry: repeated runs converge on the same rows.

        Args:
            sku: Product SKU
            preferred_url: Image hint that should lead the gallery

        Returns:
            MediaSyncResult

        Raises:
            DatabaseError: If reading or writing gallery rows fails
        """
        key = stable_lock_key(MEDIA_LOCK_NAMESPACE, sku)

        with self.locks.hold(key):
            logger.debug("media_lock_acquired", sku=sku, key=key)
            result = self._sync_locked(sku, preferred_url)

        logger.info(
            "media_synced",
            sku=sku,
            status=result.status,
            candidates=len(result.candidates),
            removed=result.removed,
            inserted=result.inserted,
            reindexed=result.reindexed
        )
        return result

    def _sync_locked(self, sku: str, preferred_url: Optional[str]) -> MediaSyncResult:
        product = self._get_product(sku)
        if product is None:
            logger.warning("media_sync_product_missing", sku=sku)
            return MediaSyncResult(sku=sku, status="product_missing")

        preferred = self.resolve_path(preferred_url, sku=sku) if preferred_url else None
        candidates = self._collect_candidates(sku, preferred, gallery_hints(product.attributes))

        removed, inserted, reindexed = self.reconcile(product.id, candidates)
        primary = self._update_primary(product, preferred, candidates)

        return MediaSyncResult(
            sku=sku,
            candidates=candidates,
            removed=removed,
            inserted=inserted,
            reindexed=reindexed,
            primary_image=primary
        )

    # ===================
    # CANDIDATES
    # ===================

    def resolve_candidates(
        self,
        sku: str,
        preferred_url: Optional[str] = None,
        gallery: Optional[list[str]] = None
    ) -> list[str]:
        """Ordered, de-duplicated candidate URLs for a SKU."""
        preferred = self.resolve_path(preferred_url, sku=sku) if preferred_url else None
        return self._collect_candidates(sku, preferred, gallery or [])

    def _collect_candidates(
        self,
        sku: str,
        preferred: Optional[str],
        gallery: list[str]
    ) -> list[str]:
        ordered = [preferred] if preferred else []
        for hint in gallery:
            url = self.resolve_path(hint, sku=sku)
            if url:
                ordered.append(url)
        ordered += self._sku_directory_images(sku)

        candidates: list[str] = []
        for url in ordered:
            if url not in candidates:
                candidates.append(url)
        return candidates

    def resolve_path(self, hint: Optional[str], sku: Optional[str] = None) -> Optional[str]:
        """
        Resolve one media hint.

        Accepts an http(s) URL (returned unchanged), a public URL under the
        media base URL, a file:// URL, an absolute path, a path relative to
        media_root, or a bare file name (looked up in the SKU directory
        first, then in media_root).

        Returns:
            Public URL, or None when the hint does not name an image file
            strictly inside media_root
        """
        if not hint or not hint.strip():
            return None
        text = hint.strip()

        if text.startswith(self.base_url + "/"):
            text = text[len(self.base_url) + 1:]
        elif is_remote_url(text):
            return text
        elif text.lower().startswith("file://"):
            text = text[len("file://"):]

        text = text.replace("\\", "/")
        relative = Path(text)

        if relative.is_absolute():
            search = [relative]
        elif len(relative.parts) == 1 and sku:
            search = [self.media_root / sku / relative, self.media_root / relative]
        else:
            search = [self.media_root / relative]

        for candidate in search:
            resolved = self._confine(candidate)
            if resolved is not None and resolved.is_file() and is_image_name(resolved.name):
                return self._public_url(resolved)

        logger.warning("media_hint_rejected", sku=sku, hint=hint)
        return None

    def _sku_directory_images(self, sku: str) -> list[str]:
        directory = self._confine(self.media_root / sku)
        if directory is None or not directory.is_dir():
            return []

        urls = []
        for entry in sorted(directory.iterdir(), key=lambda p: p.name):
            resolved = self._confine(entry)
            if resolved is not None and resolved.is_file() and is_image_name(resolved.name):
                urls.append(self._public_url(resolved))
        return urls

    def _confine(self, path: Path) -> Optional[Path]:
        """Resolved path if it lies strictly inside media_root, else None."""
        try:
            resolved = path.resolve()
        except (OSError, RuntimeError):
            return None
        if resolved == self.media_root or not resolved.is_relative_to(self.media_root):
            return None
        return resolved

    def _public_url(self, resolved: Path) -> str:
        return f"{self.base_url}/{resolved.relative_to(self.media_root).as_posix()}"

    # ===================
    # RECONCILE
    # ===================

    def reconcile(self, product_id: int, candidates: list[str]) -> tuple[int, int, int]:
        """
        Make the product's gallery rows equal to `candidates`, in order.

        An empty candidate list clears the gallery.

        Returns:
            (removed, inserted, reindexed) row counts
        """
        try:
            result = (
                self.db.table("product_images")
                .select("id, product_id, url, idx")
                .eq("product_id", product_id)
                .execute()
            )
            existing = [ProductImageRecord.model_validate(r) for r in result.data or []]

            wanted = {url: idx for idx, url in enumerate(candidates)}

            stale_ids = [row.id for row in existing if row.url not in wanted]
            if stale_ids:
                self.db.table("product_images").delete().in_("id", stale_ids).execute()

            kept = {row.url: row for row in existing if row.url in wanted}

            new_rows = [
                {"product_id": product_id, "url": url, "idx": idx}
                for url, idx in wanted.items()
                if url not in kept
            ]
            if new_rows:
                self.db.table("product_images").insert(new_rows).execute()

            reindexed = 0
            for url, row in kept.items():
                if row.idx != wanted[url]:
                    self.db.table("product_images").update(
                        {"idx": wanted[url]}
                    ).eq("id", row.id).execute()
                    reindexed += 1

        except Exception as e:
            logger.error("gallery_reconcile_failed", product_id=product_id, error=str(e))
            raise DatabaseError("reconcile", str(e), {"product_id": product_id})

        return len(stale_ids), len(new_rows), reindexed

    # ===================
    # PRODUCT
    # ===================

    def _get_product(self, sku: str) -> Optional[ProductRecord]:
        try:
            result = (
                self.db.table("products")
                .select("id, sku, image_url, attributes")
                .eq("sku", sku)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("media_product_lookup_failed", sku=sku, error=str(e))
            raise DatabaseError("select", str(e), {"sku": sku})

        if not result.data:
            return None
        row = result.data[0]
        return ProductRecord.model_validate({**row, "attributes": row.get("attributes") or {}})

    def _update_primary(
        self,
        product: ProductRecord,
        preferred: Optional[str],
        candidates: list[str]
    ) -> Optional[str]:
        current = product.image_url

        if preferred:
            target = preferred
        elif not current and candidates:
            target = candidates[0]
        else:
            return current

        if target == current:
            return current

        try:
            self.db.table("products").update(
                {"image_url": target}
            ).eq("id", product.id).execute()
        except Exception as e:
            logger.error("primary_image_update_failed", sku=product.sku, error=str(e))
            raise DatabaseError("update", str(e), {"sku": product.sku})

        logger.debug("primary_image_updated", sku=product.sku, image_url=target)
        return target


def gallery_hints(attributes: dict[str, Any]) -> list[str]:
    """Hints listed under attributes.gallery_files, in order."""
    value = attributes.get(GALLERY_ATTRIBUTE)
    if isinstance(value, str):
        value = value.split("|")
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if str(v).strip()]
