"""搜索索引：维护每张照片的反范式文档，支持单条/批量写入、删除与过滤查询。

两种后端：
- ``DatabaseSearchIndexer``：Django ORM 上的 ``SearchDocument`` 表，默认启用；
- ``ElasticsearchIndexer``：``elasticsearch`` 客户端，``SEARCH_BACKEND=elasticsearch``。

写路径上的失败由调用方记录后吞掉；查询路径上转换为 ``SearchUnavailable``。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from functools import reduce
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import elasticsearch
from django.conf import settings
from django.db import DatabaseError, transaction
from django.db.models import Case, F, IntegerField, Q, Value, When
from django.utils import timezone

from ..domain.values import MetadataMap, PickRejectState, validate_stars
from ..exceptions import SearchIndexError, SearchUnavailable, ValidationError
from ..models import Album, Photo, SearchDocument

logger = logging.getLogger(__name__)

# 字段权重，与 Elasticsearch 的 multi_match boost 保持一致
FIELD_WEIGHTS = {
    "title": 3,
    "album_title": 2,
    "album_location": 1,
    "comments": 1,
    "metadata_text": 1,
}


@dataclass
class SearchFilter:
    query: str = ""
    album_id: Optional[int] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    min_stars: Optional[int] = None
    max_stars: Optional[int] = None
    state: Optional[str] = None
    limit: int = 0
    offset: int = 0
    # 非管理员未指定相册时限制在其可见相册内；None 表示不限制
    album_ids: Optional[List[int]] = None

    def normalized(self) -> "SearchFilter":
        default_limit = int(getattr(settings, "SEARCH_DEFAULT_LIMIT", 50))
        max_limit = int(getattr(settings, "SEARCH_MAX_LIMIT", 1000))
        if self.min_stars is not None:
            validate_stars(self.min_stars)
        if self.max_stars is not None:
            validate_stars(self.max_stars)
        if self.min_stars is not None and self.max_stars is not None and self.min_stars > self.max_stars:
            raise ValidationError("minStars 不能大于 maxStars")
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValidationError("dateFrom 不能晚于 dateTo")
        state = PickRejectState.parse(self.state).value if self.state else None
        limit = min(self.limit if self.limit and self.limit > 0 else default_limit, max_limit)
        offset = max(self.offset or 0, 0)
        max_window = int(getattr(settings, "SEARCH_MAX_WINDOW", 10000))
        if offset + limit > max_window:
            raise ValidationError(f"offset + limit 不能超过 {max_window}")
        return SearchFilter(
            query=(self.query or "").strip(),
            album_id=self.album_id,
            date_from=self.date_from,
            date_to=self.date_to,
            min_stars=self.min_stars,
            max_stars=self.max_stars,
            state=state,
            limit=limit,
            offset=offset,
            album_ids=None if self.album_ids is None else list(self.album_ids),
        )


@dataclass
class SearchResult:
    total: int
    photos: List[Photo] = field(default_factory=list)


def build_search_document(photo: Photo, album: Optional[Album], comments: Sequence[str]) -> Dict:
    metadata = MetadataMap.from_json(photo.metadata)
    custom_fields = MetadataMap.from_json(album.custom_fields) if album else MetadataMap()
    return {
        "id": photo.id,
        "album_id": photo.album_id,
        "title": photo.title or "",
        "date_time": photo.capture_time,
        "metadata": metadata,
        "metadata_text": " ".join(metadata.text_values()),
        "album_title": album.title if album else "",
        "album_location": (album.location or "") if album else "",
        "album_custom_fields": custom_fields,
        "comments": list(comments),
        "pick_reject_state": photo.state,
        "stars": photo.stars,
        "created_at": photo.created_at,
        "updated_at": photo.updated_at,
    }


class SearchIndexer:
    def upsert(self, photo: Photo, album: Optional[Album], comments: Sequence[str]) -> None:
        raise NotImplementedError

    def bulk_upsert(
        self,
        photos: Sequence[Photo],
        albums: Mapping[int, Album],
        comments: Mapping[int, Sequence[str]],
    ) -> None:
        raise NotImplementedError

    def remove(self, photo_id: int) -> None:
        raise NotImplementedError

    def query(self, search_filter: SearchFilter) -> Tuple[int, List[int]]:
        """返回 (total, 命中的 photo id 列表)。"""
        raise NotImplementedError


class DatabaseSearchIndexer(SearchIndexer):
    def _to_row(self, doc: Dict) -> SearchDocument:
        return SearchDocument(
            photo_id=doc["id"],
            album_id=doc["album_id"],
            title=doc["title"],
            album_title=doc["album_title"],
            album_location=doc["album_location"],
            album_custom_fields=doc["album_custom_fields"],
            comments="\n".join(doc["comments"]),
            metadata=doc["metadata"],
            metadata_text=doc["metadata_text"],
            state=doc["pick_reject_state"],
            stars=doc["stars"],
            capture_time=doc["date_time"],
            created_at=doc["created_at"],
            updated_at=doc["updated_at"],
            indexed_at=timezone.now(),
        )

    def upsert(self, photo, album, comments) -> None:
        row = self._to_row(build_search_document(photo, album, comments))
        try:
            row.save()
        except DatabaseError as exc:
            raise SearchIndexError(f"索引照片 {photo.id} 失败: {exc}") from exc

    def bulk_upsert(self, photos, albums, comments) -> None:
        if not photos:
            return
        rows = [
            self._to_row(build_search_document(photo, albums.get(photo.album_id), comments.get(photo.id, ())))
            for photo in photos
        ]
        try:
            # 整批成功或整批失败
            with transaction.atomic():
                SearchDocument.objects.filter(photo_id__in=[row.photo_id for row in rows]).delete()
                SearchDocument.objects.bulk_create(rows)
        except DatabaseError as exc:
            raise SearchIndexError(f"批量索引失败: {exc}") from exc

    def remove(self, photo_id: int) -> None:
        try:
            SearchDocument.objects.filter(photo_id=photo_id).delete()
        except DatabaseError as exc:
            raise SearchIndexError(f"删除索引 {photo_id} 失败: {exc}") from exc

    @staticmethod
    def _relevance(terms: Iterable[str]):
        scores = []
        for term in terms:
            for field_name, weight in FIELD_WEIGHTS.items():
                scores.append(
                    Case(
                        When(**{f"{field_name}__icontains": term}, then=Value(weight)),
                        default=Value(0),
                        output_field=IntegerField(),
                    )
                )
        return reduce(lambda left, right: left + right, scores)

    def query(self, search_filter: SearchFilter):
        f = search_filter
        qs = SearchDocument.objects.all()
        if f.album_id is not None:
            qs = qs.filter(album_id=f.album_id)
        if f.album_ids is not None:
            qs = qs.filter(album_id__in=f.album_ids)
        if f.date_from is not None:
            qs = qs.filter(capture_time__gte=f.date_from)
        if f.date_to is not None:
            qs = qs.filter(capture_time__lte=f.date_to)
        if f.min_stars is not None:
            qs = qs.filter(stars__gte=f.min_stars)
        if f.max_stars is not None:
            qs = qs.filter(stars__lte=f.max_stars)
        if f.state:
            qs = qs.filter(state=f.state)

        terms = f.query.split()
        if terms:
            # 每个词至少命中一个字段
            for term in terms:
                qs = qs.filter(reduce(
                    lambda left, right: left | right,
                    (Q(**{f"{name}__icontains": term}) for name in FIELD_WEIGHTS),
                ))
            qs = qs.annotate(relevance=self._relevance(terms))

        order = [F("capture_time").desc(nulls_last=True), "-created_at"]
        if terms:
            order.append("-relevance")
        qs = qs.order_by(*order, "-photo_id")
        try:
            total = qs.count()
            ids = list(qs.values_list("photo_id", flat=True)[f.offset:f.offset + f.limit])
        except DatabaseError as exc:
            raise SearchUnavailable(f"搜索失败: {exc}") from exc
        return total, ids


PHOTOS_MAPPING = {
    "properties": {
        "id": {"type": "long"},
        "album_id": {"type": "long"},
        "title": {"type": "text"},
        "date_time": {"type": "date"},
        "metadata": {"type": "object", "enabled": False},
        "metadata_text": {"type": "text"},
        "album_title": {"type": "text"},
        "album_location": {"type": "text"},
        "album_custom_fields": {"type": "object", "enabled": False},
        "comments": {"type": "text"},
        "pick_reject_state": {"type": "keyword"},
        "stars": {"type": "integer"},
        "created_at": {"type": "date"},
        "updated_at": {"type": "date"},
    }
}


def _es_body(doc: Dict) -> Dict:
    body = dict(doc)
    body["metadata"] = doc["metadata"].as_dict()
    body["album_custom_fields"] = doc["album_custom_fields"].as_dict()
    for key in ("date_time", "created_at", "updated_at"):
        value = body.get(key)
        body[key] = value.isoformat() if value is not None else None
    return body


class ElasticsearchIndexer(SearchIndexer):
    def __init__(self, client=None, index: Optional[str] = None) -> None:
        self.index = index or getattr(settings, "ELASTICSEARCH_INDEX", "photos")
        self._client = client

    @property
    def client(self):
        if self._client is None:
            username = getattr(settings, "ELASTICSEARCH_USERNAME", None)
            kwargs = {}
            if username:
                kwargs["basic_auth"] = (username, getattr(settings, "ELASTICSEARCH_PASSWORD", "") or "")
            self._client = elasticsearch.Elasticsearch(getattr(settings, "ELASTICSEARCH_HOSTS", ["http://localhost:9200"]), **kwargs)
        return self._client

    @property
    def _errors(self):
        return (elasticsearch.ApiError, elasticsearch.TransportError)

    def ensure_index(self) -> None:
        try:
            if not self.client.indices.exists(index=self.index):
                self.client.indices.create(index=self.index, mappings=PHOTOS_MAPPING)
        except self._errors as exc:
            raise SearchIndexError(f"创建索引失败: {exc}") from exc

    def upsert(self, photo, album, comments) -> None:
        body = _es_body(build_search_document(photo, album, comments))
        try:
            self.client.index(index=self.index, id=str(photo.id), document=body, refresh=True)
        except self._errors as exc:
            raise SearchIndexError(f"索引照片 {photo.id} 失败: {exc}") from exc

    def bulk_upsert(self, photos, albums, comments) -> None:
        if not photos:
            return
        operations = []
        for photo in photos:
            doc = build_search_document(photo, albums.get(photo.album_id), comments.get(photo.id, ()))
            operations.append({"index": {"_index": self.index, "_id": str(photo.id)}})
            operations.append(_es_body(doc))
        try:
            response = self.client.bulk(operations=operations, refresh=True)
        except self._errors as exc:
            raise SearchIndexError(f"批量索引失败: {exc}") from exc
        if response.get("errors"):
            raise SearchIndexError("批量索引部分失败")

    def remove(self, photo_id: int) -> None:
        try:
            self.client.delete(index=self.index, id=str(photo_id), refresh=True)
        except elasticsearch.NotFoundError:
            return
        except self._errors as exc:
            raise SearchIndexError(f"删除索引 {photo_id} 失败: {exc}") from exc

    @staticmethod
    def build_query(f: SearchFilter) -> Dict:
        must: List[Dict] = []
        if f.query:
            must.append({
                "multi_match": {
                    "query": f.query,
                    "fields": [
                        f"{name}^{weight}" if weight > 1 else name
                        for name, weight in FIELD_WEIGHTS.items()
                    ],
                    "operator": "and",
                    "type": "cross_fields",
                }
            })
        if f.album_id is not None:
            must.append({"term": {"album_id": f.album_id}})
        if f.album_ids is not None:
            must.append({"terms": {"album_id": f.album_ids}})
        if f.date_from is not None or f.date_to is not None:
            date_range = {}
            if f.date_from is not None:
                date_range["gte"] = f.date_from.isoformat()
            if f.date_to is not None:
                date_range["lte"] = f.date_to.isoformat()
            must.append({"range": {"date_time": date_range}})
        if f.min_stars is not None or f.max_stars is not None:
            stars_range = {}
            if f.min_stars is not None:
                stars_range["gte"] = f.min_stars
            if f.max_stars is not None:
                stars_range["lte"] = f.max_stars
            must.append({"range": {"stars": stars_range}})
        if f.state:
            must.append({"term": {"pick_reject_state": f.state}})
        return {"bool": {"must": must}} if must else {"match_all": {}}

    def query(self, search_filter: SearchFilter):
        f = search_filter
        try:
            response = self.client.search(
                index=self.index,
                query=self.build_query(f),
                sort=[
                    {"date_time": {"order": "desc", "missing": "_last"}},
                    {"created_at": {"order": "desc"}},
                    "_score",
                ],
                size=f.limit,
                from_=f.offset,
                track_total_hits=True,
                source=False,
            )
        except self._errors as exc:
            raise SearchUnavailable(f"搜索失败: {exc}") from exc

        hits = response.get("hits") or {}
        total_raw = hits.get("total") or {}
        total = total_raw.get("value", 0) if isinstance(total_raw, dict) else int(total_raw or 0)
        ids = []
        for hit in hits.get("hits") or []:
            try:
                ids.append(int(hit["_id"]))
            except (KeyError, TypeError, ValueError):
                logger.warning("忽略无法解析的搜索结果", extra={"hit": hit})
        return int(total), ids


def get_search_indexer() -> SearchIndexer:
    backend = getattr(settings, "SEARCH_BACKEND", "database")
    if backend == "elasticsearch":
        return ElasticsearchIndexer()
    return DatabaseSearchIndexer()
