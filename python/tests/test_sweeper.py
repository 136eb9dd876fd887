"""Tests for the retention sweep of soft-deleted cards."""

from datetime import timedelta

from teak.db.models import Card, CardWorkflowRun, CardWorkflowStep, utcnow
from teak.pipeline.orchestrator import start_card_processing
from teak.tasks.sweep_deleted_cards import card_blob_paths, sweep_deleted_cards_sync
from tests.factories import create_test_card, soft_delete


def card_with_blobs(db, storage, deleted_days_ago: int | None) -> Card:
    card = create_test_card(db, type="image", file_path="uploads/a.png")
    card.thumbnail_path = f"cards/{card.id}/thumbnail-1.webp"
    db.commit()
    storage.put_object(card.file_path, b"png")
    storage.put_object(card.thumbnail_path, b"webp", "image/webp")
    if deleted_days_ago is not None:
        soft_delete(db, card, utcnow() - timedelta(days=deleted_days_ago))
    return card


class TestCardBlobPaths:
    def test_collects_every_reference_once(self):
        card = Card(
            type="link",
            content="",
            file_path="uploads/x.png",
            thumbnail_path="uploads/x.png",
            card_metadata={
                "linkPreview": {
                    "imageStorageId": "cards/1/preview-image-a.png",
                    "screenshotStorageId": "cards/1/screenshot-b.png",
                }
            },
        )

        assert card_blob_paths(card) == [
            "uploads/x.png",
            "cards/1/preview-image-a.png",
            "cards/1/screenshot-b.png",
        ]


class TestSweepDeletedCards:
    def test_expired_card_and_blobs_removed(self, db_session, storage):
        """A card deleted 31 days ago is purged along with its file and thumbnail."""
        card = card_with_blobs(db_session, storage, deleted_days_ago=31)
        card_id = card.id
        paths = [card.file_path, card.thumbnail_path]

        removed = sweep_deleted_cards_sync(db_session, storage)

        assert removed == 1
        assert all(not storage.has_object(path) for path in paths)
        db_session.expire_all()
        assert db_session.get(Card, card_id) is None

    def test_recent_and_live_cards_kept(self, db_session, storage):
        recent = card_with_blobs(db_session, storage, deleted_days_ago=29)
        live = card_with_blobs(db_session, storage, deleted_days_ago=None)

        assert sweep_deleted_cards_sync(db_session, storage) == 0

        db_session.expire_all()
        assert db_session.get(Card, recent.id) is not None
        assert db_session.get(Card, live.id) is not None
        assert storage.deleted == []

    def test_failed_blob_delete_does_not_block_record(self, db_session, storage):
        card = card_with_blobs(db_session, storage, deleted_days_ago=40)
        card_id, thumbnail_path = card.id, card.thumbnail_path
        storage.failing_deletes.add(card.file_path)

        assert sweep_deleted_cards_sync(db_session, storage) == 1

        db_session.expire_all()
        assert db_session.get(Card, card_id) is None
        assert storage.deleted == [thumbnail_path]

    def test_workflow_rows_removed(self, db_session, storage):
        card = create_test_card(db_session, content="hello")
        start_card_processing(db_session, card.id)
        soft_delete(db_session, card, utcnow() - timedelta(days=45))

        sweep_deleted_cards_sync(db_session, storage)

        assert db_session.query(CardWorkflowRun).count() == 0
        assert db_session.query(CardWorkflowStep).count() == 0

    def test_batches_until_done(self, db_session, storage):
        for _ in range(12):
            card_with_blobs(db_session, storage, deleted_days_ago=60)

        assert sweep_deleted_cards_sync(db_session, storage) == 12
        assert db_session.query(Card).count() == 0

    def test_custom_retention(self, db_session, storage):
        card_with_blobs(db_session, storage, deleted_days_ago=8)

        assert sweep_deleted_cards_sync(db_session, storage, retention_days=7) == 1
