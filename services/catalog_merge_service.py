"""
Catalog Merger.

Turns a staged batch into canonical products keyed by SKU, and handles the
single-product URL import path.

Merge rules per row:
- pricing_method is "manual" when the row carries a price, else
  "cost_plus" (price from the pricing engine, breakdown stored in
  products.pricing).
- A price that is not a finite positive number never overwrites a stored
  one: updates keep the existing price, inserts get rounding.min_price.
- image_url is stored only for remote URLs that pass the image extension
  allow-list; local paths go to media sync as hints. Otherwise the stored
  image_url is kept.
- attributes are merged key by key into the stored map.
- Category links are inserted with ignore-on-conflict; unknown slugs are
  skipped unless create_missing_categories is set.

The fallbacks run inside the upsert_products database function
(migrations/0005), against the stored row at write time, so a concurrent
writer cannot slip between a read and the write.

Rows are processed in chunks of import_chunk_size, one upsert_products
call per chunk. If the database rejects a chunk, its records are retried
one by one and the ones still rejected are reported as row errors.
Progress is reported after every chunk. Re-running a merge for the same
batch produces the same product rows.
"""

import secrets
import string
from typing import Any, Callable, Optional
import structlog

from config import get_supabase_client, get_pricing_config, settings
from exceptions import DatabaseError
from jobs.queue import JobQueue, get_job_queue
from models.imports import MergeReport, RowError, UrlImportResult
from models.jobs import ImportUrlJob, QUEUE_MEDIA, JOB_SYNC_MEDIA
from models.pricing import PricingConfig, PricingInput, PricingMethod
from models.product import CategoryRecord
from models.staging import StagingRow
from services.pricing_service import compute_cost_plus
from services.staging_service import StagingService
from utils.attributes import merge_attributes, parse_attributes
from utils.media import classify_media_url, is_remote_url
from utils.numbers import coerce_number, is_positive_number
from utils.text_utils import clean_text, slug_to_name, split_category_slugs

logger = structlog.get_logger(__name__)

PRODUCT_COLUMNS = "id, sku, name, description, price, currency, stock, attributes, image_url"

SKU_ALPHABET = string.ascii_uppercase + string.digits

ProgressCallback = Callable[[float], None]


def generate_sku() -> str:
    """Random code for URL imports without a SKU, e.g. "SKU-4K9QZ2"."""
    return "SKU-" + "".join(secrets.choice(SKU_ALPHABET) for _ in range(6))


class CatalogMergeService:
    """
    Staging → catalog merge.

    Core methods:
    - merge_batch: Merge every staged row of a batch
    - upsert_from_url: Create or update one product from a URL import
    - refresh_catalog_view: Best-effort materialized view refresh
    """

    def __init__(
        self,
        pricing_config: Optional[PricingConfig] = None,
        job_queue: Optional[JobQueue] = None,
        chunk_size: Optional[int] = None
    ):
        self.db = get_supabase_client()
        self.table = "products"
        self.staging = StagingService()
        self.pricing = pricing_config or get_pricing_config()
        self.job_queue = job_queue or get_job_queue()
        self.chunk_size = chunk_size or settings.import_chunk_size

    # ===================
    # BATCH MERGE
    # ===================

    def merge_batch(
        self,
        batch_id: str,
        on_progress: Optional[ProgressCallback] = None
    ) -> MergeReport:
        """
        Merge a staged batch into the catalog.

        Args:
            batch_id: Batch to merge
            on_progress: Called with the merged fraction after each chunk

        Returns:
            MergeReport with upsert count, row errors and media job count

        Raises:
            DatabaseError: If a read fails, or a chunk write fails while
                the products table is unreachable
        """
        rows = self.staging.get_batch_rows(batch_id)
        report = MergeReport(batch_id=batch_id, rows=len(rows))

        logger.info("batch_merge_started", batch_id=batch_id, rows=len(rows))

        if not rows:
            logger.warning("batch_merge_empty", batch_id=batch_id)
            if on_progress:
                on_progress(1.0)
            return report

        slugs: list[str] = []
        for row in rows:
            for slug in split_category_slugs(row.categories):
                if slug not in slugs:
                    slugs.append(slug)
        category_ids = self.resolve_categories(slugs)

        for start in range(0, len(rows), self.chunk_size):
            chunk = rows[start:start + self.chunk_size]
            self._merge_chunk(batch_id, chunk, category_ids, report)

            done = min(len(rows), start + len(chunk))
            if on_progress:
                on_progress(done / len(rows))
            logger.debug("batch_chunk_merged", batch_id=batch_id, done=done, total=len(rows))

        report.view_refreshed = self.refresh_catalog_view()

        logger.info(
            "batch_merged",
            batch_id=batch_id,
            rows=report.rows,
            upserted=report.upserted,
            errors=len(report.errors),
            media_jobs=report.media_jobs
        )
        return report

    def _merge_chunk(
        self,
        batch_id: str,
        rows: list[StagingRow],
        category_ids: dict[str, int],
        report: MergeReport
    ) -> None:
        # Later rows for the same SKU fold into earlier ones
        by_sku: dict[str, StagingRow] = {}
        for row in rows:
            sku = clean_text(row.sku)
            if not sku:
                report.errors.append(RowError(
                    row_number=row.row_number,
                    field="sku",
                    error="SKU is required",
                    raw=row.model_dump(exclude={"import_batch_id"})
                ))
                continue
            if sku in by_sku:
                previous = by_sku[sku]
                row = row.model_copy(update={
                    "attributes": merge_attributes(previous.attributes, row.attributes),
                    "categories": "|".join(split_category_slugs(
                        f"{previous.categories}|{row.categories}"
                    )),
                })
            by_sku[sku] = row

        if not by_sku:
            return

        existing = self._get_existing(list(by_sku))

        records: list[dict] = []
        merged_rows: list[StagingRow] = []
        for sku, row in by_sku.items():
            try:
                records.append(self.build_record(sku, row, existing.get(sku)))
                merged_rows.append(row.model_copy(update={"sku": sku}))
            except (ValueError, TypeError) as e:
                logger.warning(
                    "merge_row_rejected",
                    batch_id=batch_id,
                    row_number=row.row_number,
                    sku=sku,
                    error=str(e)
                )
                report.errors.append(RowError(
                    row_number=row.row_number,
                    sku=sku,
                    field="row",
                    error=str(e),
                    raw=row.model_dump(exclude={"import_batch_id"})
                ))

        if not records:
            return

        product_ids = self._write_records(batch_id, records, merged_rows, report)
        report.upserted += len(product_ids)

        links = []
        for row in merged_rows:
            product_id = product_ids.get(row.sku)
            if product_id is None:
                continue
            for slug in split_category_slugs(row.categories):
                category_id = category_ids.get(slug)
                if category_id is not None:
                    links.append({"product_id": product_id, "category_id": category_id})
        self.link_categories(links)

        for row in merged_rows:
            if row.sku not in product_ids:
                continue
            self.enqueue_media_sync(row.sku, classify_media_url(row.image_url, "image"))
            report.media_jobs += 1

    def _write_records(
        self,
        batch_id: str,
        records: list[dict],
        rows: list[StagingRow],
        report: MergeReport
    ) -> dict[str, int]:
        """
        Upsert a chunk, falling back to one record at a time.

        When the bulk write is rejected, each record is retried alone so
        one value the database refuses (a 4-letter currency, an overflowing
        price) costs only its own row. Records that still fail become
        RowErrors. If nothing goes through and the products table cannot
        be read either, the database is down and the original error is
        raised.
        """
        try:
            return self._upsert_products(records)
        except DatabaseError as e:
            logger.warning(
                "chunk_upsert_rejected",
                batch_id=batch_id,
                rows=len(records),
                error=e.message
            )
            chunk_error = e

        product_ids: dict[str, int] = {}
        for record, row in zip(records, rows):
            try:
                product_ids.update(self._upsert_products([record]))
            except DatabaseError as e:
                logger.warning(
                    "merge_row_rejected",
                    batch_id=batch_id,
                    row_number=row.row_number,
                    sku=row.sku,
                    error=e.message
                )
                report.errors.append(RowError(
                    row_number=row.row_number,
                    sku=row.sku,
                    field="row",
                    error=e.message,
                    raw=row.model_dump(exclude={"import_batch_id"})
                ))

        if not product_ids and not self._database_reachable():
            raise chunk_error

        return product_ids

    def build_record(
        self,
        sku: str,
        row: StagingRow,
        existing: Optional[dict]
    ) -> dict[str, Any]:
        """
        Product record for the upsert_products function.

        Fields the row does not supply are sent as null, so the database
        keeps the stored value (or applies the insert default) at write
        time. `existing` is only read to price cost-plus rows against the
        full attribute map.
        """
        currency = (
            row.currency
            or (existing or {}).get("currency")
            or self.pricing.currency
        ).upper()

        attributes = dict(row.attributes)
        if row.model_url:
            attributes["model_url"] = row.model_url

        if row.price.strip():
            method = PricingMethod.MANUAL
            price = coerce_number(row.price)
            pricing = None
        else:
            method = PricingMethod.COST_PLUS
            merged = merge_attributes(
                parse_attributes((existing or {}).get("attributes")),
                attributes
            )
            breakdown = compute_cost_plus(
                self.pricing,
                PricingInput.from_attributes(merged, currency=currency)
            )
            price = breakdown.price_final
            pricing = breakdown.model_dump(mode="json")

        return {
            "sku": sku,
            "name": clean_text(row.name),
            "description": row.description,
            "price": self._valid_price(sku, price, existing),
            "currency": row.currency.upper() if row.currency else None,
            "stock": row.stock,
            "attributes": attributes,
            "pricing_method": method.value,
            "pricing": pricing,
            "image_url": self._stored_image_url(row.image_url),
        }

    def _valid_price(self, sku: str, price: Any, existing: Optional[dict]) -> Optional[float]:
        if is_positive_number(price):
            return float(price)

        logger.warning(
            "invalid_price_replaced",
            sku=sku,
            price=price,
            fallback=(
                existing.get("price") if existing is not None
                else self.pricing.rounding.min_price
            ),
            kept_existing=existing is not None
        )
        return None

    @staticmethod
    def _stored_image_url(value: Optional[str]) -> Optional[str]:
        # Local paths are only hints for media sync, which publishes them
        image_url = classify_media_url(value, "image")
        return image_url if image_url and is_remote_url(image_url) else None

    # ===================
    # URL IMPORT
    # ===================

    def upsert_from_url(self, job: ImportUrlJob) -> UrlImportResult:
        """
        Create or update a single product from a URL import.

        Without a SKU a random "SKU-XXXXXX" is generated. The source URL is
        kept in attributes.source_url. A valid image URL is stored as the
        primary image and sent to media sync as the preferred hint.

        Raises:
            DatabaseError: If the upsert fails
        """
        sku = clean_text(job.sku) or generate_sku()
        existing = self._get_existing([sku]).get(sku)

        image_url = classify_media_url(job.image_url, "image")
        model_url = classify_media_url(job.model_url, "model")

        incoming = {**job.attributes, "source_url": job.source_url}
        if model_url:
            incoming["model_url"] = model_url
        row = StagingRow(
            import_batch_id="url",
            row_number=1,
            sku=sku,
            name=None,
            description=None if (existing or {}).get("description") else job.source_url,
            price="" if job.price is None else repr(float(job.price)),
            currency=job.currency,
            stock=job.stock,
            image_url=image_url,
            model_url=model_url,
            categories="|".join(split_category_slugs(job.categories)),
            attributes=incoming,
        )

        record = self.build_record(sku, row, existing)
        product_ids = self._upsert_products([record])
        product_id = product_ids[sku]

        category_ids = self.resolve_categories(split_category_slugs(job.categories))
        self.link_categories([
            {"product_id": product_id, "category_id": cid}
            for cid in category_ids.values()
        ])

        self.enqueue_media_sync(sku, image_url)

        logger.info(
            "url_import_merged",
            sku=sku,
            product_id=product_id,
            source_url=job.source_url,
            created=existing is None
        )

        return UrlImportResult(
            product_id=product_id,
            sku=sku,
            image_url=image_url,
            model_url=model_url
        )

    # ===================
    # CATEGORIES
    # ===================

    def resolve_categories(self, slugs: list[str]) -> dict[str, int]:
        """
        Map slugs to category ids in one query.

        Unknown slugs are omitted, or created first when
        create_missing_categories is enabled.
        """
        if not slugs:
            return {}

        found = self._select_categories(slugs)
        missing = [s for s in slugs if s not in found]

        if missing and settings.create_missing_categories:
            try:
                self.db.table("categories").upsert(
                    [{"slug": s, "name": slug_to_name(s)} for s in missing],
                    on_conflict="slug",
                    ignore_duplicates=True
                ).execute()
            except Exception as e:
                logger.error("category_create_failed", slugs=missing, error=str(e))
                raise DatabaseError("insert", str(e), {"table": "categories"})
            logger.info("categories_created", slugs=missing)
            found = self._select_categories(slugs)
            missing = [s for s in slugs if s not in found]

        if missing:
            logger.info("category_slugs_skipped", slugs=missing)

        return found

    def _select_categories(self, slugs: list[str]) -> dict[str, int]:
        try:
            result = (
                self.db.table("categories")
                .select("id, slug")
                .in_("slug", slugs)
                .execute()
            )
        except Exception as e:
            logger.error("category_lookup_failed", error=str(e))
            raise DatabaseError("select", str(e), {"table": "categories"})
        categories = [CategoryRecord.model_validate(c) for c in result.data or []]
        return {c.slug: c.id for c in categories}

    def link_categories(self, links: list[dict]) -> None:
        """Insert product/category links, ignoring ones that already exist."""
        if not links:
            return
        try:
            self.db.table("product_categories").upsert(
                links,
                on_conflict="product_id,category_id",
                ignore_duplicates=True
            ).execute()
        except Exception as e:
            logger.error("category_link_failed", links=len(links), error=str(e))
            raise DatabaseError("insert", str(e), {"table": "product_categories"})

    # ===================
    # HELPERS
    # ===================

    def _get_existing(self, skus: list[str]) -> dict[str, dict]:
        try:
            result = (
                self.db.table(self.table)
                .select(PRODUCT_COLUMNS)
                .in_("sku", skus)
                .execute()
            )
        except Exception as e:
            logger.error("existing_products_lookup_failed", skus=len(skus), error=str(e))
            raise DatabaseError("select", str(e), {"table": self.table})
        return {p["sku"]: p for p in result.data or []}

    def _upsert_products(self, records: list[dict]) -> dict[str, int]:
        params = {
            "p_rows": records,
            "p_min_price": self.pricing.rounding.min_price,
            "p_currency": self.pricing.currency,
        }
        try:
            result = self.db.rpc("upsert_products", params).execute()
        except Exception as e:
            logger.error("product_upsert_failed", rows=len(records), error=str(e))
            raise DatabaseError("upsert", str(e), {"table": self.table})
        return {p["product_sku"]: p["product_id"] for p in result.data or []}

    def _database_reachable(self) -> bool:
        try:
            self.db.table(self.table).select("id").limit(1).execute()
        except Exception as e:
            logger.error("products_table_unreachable", error=str(e))
            return False
        return True

    def enqueue_media_sync(self, sku: str, preferred_url: Optional[str]) -> None:
        """Schedule a media sync for one SKU."""
        self.job_queue.enqueue(
            QUEUE_MEDIA,
            JOB_SYNC_MEDIA,
            {"sku": sku, "preferUrl": preferred_url}
        )

    def refresh_catalog_view(self) -> bool:
        """
        Refresh the catalog materialized view.

        Failure is logged and ignored: the view only speeds up reads.
        """
        function = f"refresh_{settings.catalog_view_name}"
        try:
            self.db.rpc(function, {}).execute()
        except Exception as e:
            logger.warning("catalog_view_refresh_failed", function=function, error=str(e))
            return False
        logger.debug("catalog_view_refreshed", function=function)
        return True
