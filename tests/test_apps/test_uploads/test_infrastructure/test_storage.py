"""Tests for the filesystem content store."""

import os
import shutil

import pytest

from server.apps.uploads.exceptions import StorageUnavailableError
from server.apps.uploads.infrastructure.storage import ContentStore


class TestContentStorePut:
    """Tests for ContentStore.put()."""

    def test_put_writes_file(self, store, store_dir):
        """Test a new name is written and reported as created."""
        created = store.put('abc.png', b'image bytes')

        assert created is True
        assert (store_dir / 'abc.png').read_bytes() == b'image bytes'

    def test_put_existing_name_is_dedup_hit(self, store, store_dir, age_file):
        """Test a second put keeps the original file and mtime."""
        store.put('abc.png', b'original')
        age_file(store_dir / 'abc.png', 3600)
        original_mtime = os.stat(store_dir / 'abc.png').st_mtime

        created = store.put('abc.png', b'different')

        assert created is False
        assert (store_dir / 'abc.png').read_bytes() == b'original'
        assert os.stat(store_dir / 'abc.png').st_mtime == original_mtime

    def test_put_leaves_no_temporary_files(self, store, store_dir):
        """Test the atomic write cleans up after itself."""
        store.put('abc.png', b'image bytes')

        assert os.listdir(store_dir) == ['abc.png']

    def test_put_missing_directory(self, store, store_dir):
        """Test StorageUnavailableError when the directory is gone."""
        shutil.rmtree(store_dir)

        with pytest.raises(StorageUnavailableError):
            store.put('abc.png', b'image bytes')

        # The store must not silently recreate the directory
        assert not store_dir.exists()


class TestContentStoreDelete:
    """Tests for ContentStore.delete()."""

    def test_delete_removes_file(self, store, store_dir):
        """Test delete removes the named file."""
        store.put('abc.png', b'image bytes')

        store.delete('abc.png')

        assert not (store_dir / 'abc.png').exists()

    def test_delete_missing_file_is_noop(self, store):
        """Test deleting an absent file does not raise."""
        store.delete('missing.png')

    def test_delete_only_touches_named_file(self, store, store_dir):
        """Test other files survive a delete."""
        store.put('abc.png', b'one')
        store.put('def.png', b'two')

        store.delete('abc.png')

        assert (store_dir / 'def.png').exists()


class TestContentStoreListing:
    """Tests for ContentStore listing helpers."""

    def test_list_all(self, store, store_dir, age_file):
        """Test every file is listed with its mtime."""
        store.put('abc.png', b'one')
        store.put('def.jpg', b'two')
        age_file(store_dir / 'def.jpg', 7200)

        listing = dict(store.list_all())

        assert set(listing) == {'abc.png', 'def.jpg'}
        assert listing['abc.png'] - listing['def.jpg'] == pytest.approx(
            7200,
            abs=5,
        )

    def test_list_all_skips_directories(self, store, store_dir):
        """Test subdirectories are not reported as files."""
        (store_dir / 'nested').mkdir()
        store.put('abc.png', b'one')

        assert [name for name, _ in store.list_all()] == ['abc.png']

    def test_list_all_missing_directory(self, store, store_dir):
        """Test StorageUnavailableError when the directory is gone."""
        shutil.rmtree(store_dir)

        with pytest.raises(StorageUnavailableError):
            store.list_all()

    def test_stored_file(self, store, store_dir):
        """Test stored_file describes an existing file."""
        store.put('abc.png', b'one')

        stored = store.stored_file('abc.png')

        assert stored.name == 'abc.png'
        assert stored.path == store_dir / 'abc.png'
        assert stored.written_at == os.stat(store_dir / 'abc.png').st_mtime

    def test_ensure_directory(self, tmp_path):
        """Test ensure_directory creates a missing directory."""
        store = ContentStore(tmp_path / 'new' / 'files')
        assert not store.is_available()

        store.ensure_directory()

        assert store.is_available()
