import numpy as np


def log_feature_store_summary(logger, store):
    stats = store.stats()
    logger.info("=== Feature Store ===")
    logger.info("Items: %s", f"{stats['total_items']:,}")
    logger.info("Feature dimension: %d", int(stats["average_features"]))
    logger.info("Validation issues: %s", f"{stats['validation_errors']:,}")

    if stats["total_items"] == 0:
        return

    scores = np.array([item.average_score for item in store])
    genre_counts = np.array([len(item.genres) for item in store])
    logger.info(f"Average score mean/min/max: {scores.mean():.2f} / {scores.min():.2f} / {scores.max():.2f}")
    logger.info(f"Items without a score: {(scores == 0).sum():,}")
    logger.info(f"Genres per item mean: {genre_counts.mean():.2f}")
    logger.info(f"Items without genres: {(genre_counts == 0).sum():,}")


def log_interaction_matrix_summary(logger, matrix):
    n_users, n_items = matrix.rated.shape
    logger.info("=== Interaction Matrix ===")
    logger.info("Shape: %s", matrix.rated.shape)
    logger.info("Non-zero entries: %s", f"{matrix.rated.nnz:,}")

    if n_users == 0 or n_items == 0:
        logger.warning("⚠️  Interaction matrix is empty - collaborative scoring will only return cold-start results")
        return

    logger.info("Density: %.4f%%", 100 * matrix.rated.nnz / (n_users * n_items))

    user_interactions = np.asarray(matrix.rated.sum(axis=1)).ravel()
    logger.info(f"Mean interactions per user: {user_interactions.mean():.2f}")
    logger.info(f"Median interactions per user: {np.median(user_interactions):.2f}")
    users_single = (user_interactions < 2).sum()
    logger.info(f"Users with <2 interactions: {users_single:,} ({100*users_single/n_users:.1f}%)")

    values = matrix.values.data
    if len(values) > 0:
        logger.info(f"Rating value min/max/mean: {values.min():.2f} / {values.max():.2f} / {values.mean():.2f}")

    if users_single > 0.5 * n_users:
        logger.warning("⚠️  >50% of users have <2 interactions - most users cannot be matched to neighbors")


def log_recommendation_summary(logger, user_id, items, source, timing_ms):
    logger.info(f"Final results for user {user_id}: {len(items)} items ({source}, {timing_ms:.1f} ms)")
    logger.info(f"Sources: {[item.get('source') for item in items]}")
    logger.info(f"Scores: {[round(item['score'], 4) for item in items[:min(3, len(items))]]}")
