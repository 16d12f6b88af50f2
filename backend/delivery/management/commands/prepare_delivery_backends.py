"""创建对象存储 bucket 与搜索索引（已存在时跳过）。"""

from django.core.management.base import BaseCommand, CommandError

from ...exceptions import SearchIndexError, StorageError
from ...services.search import ElasticsearchIndexer, get_search_indexer
from ...services.storage import S3ObjectStore, get_object_store


class Command(BaseCommand):
    help = "Prepare the configured object store and search index"

    def handle(self, *args, **options):
        store = get_object_store()
        if isinstance(store, S3ObjectStore):
            try:
                store.ensure_bucket()
            except StorageError as exc:
                raise CommandError(str(exc)) from exc
            self.stdout.write(f"bucket ready: {store.config.bucket_name}")

        indexer = get_search_indexer()
        if isinstance(indexer, ElasticsearchIndexer):
            try:
                indexer.ensure_index()
            except SearchIndexError as exc:
                raise CommandError(str(exc)) from exc
            self.stdout.write(f"index ready: {indexer.index}")
        self.stdout.write("done")
