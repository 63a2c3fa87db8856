"""
Artist tag regrouping for Billfish 3.x libraries.

Pixiv artist tags are created flat as "Artist:<name>". After a run they are
renamed to "<name>" and nested under a single "Artist" parent tag. Tags that
already have a parent are left alone, so running this twice changes nothing.
"""

from loguru import logger

from pixiv_billfish.core.database import AssetStore


def regroup_artist_tags(store: AssetStore) -> int:
    """Move ungrouped "Artist:<name>" tags under the "Artist" parent.

    Returns:
        Number of tags regrouped

    Raises:
        StoreError: If the parent tag or the batch update could not be written
    """
    logger.info("Regrouping artist tags...")

    parent_id = store.get_or_create_artist_parent_tag()
    logger.info(f"Artist parent tag id: {parent_id}")

    subtags = store.list_ungrouped_artist_subtags()
    if not subtags:
        logger.info("No artist tags need regrouping")
        return 0

    logger.info(f"Found {len(subtags)} artist tags to regroup")
    updated = store.regroup_artist_subtags(subtags, parent_id)
    logger.info(f"Regrouped {updated} artist tags")
    return updated
