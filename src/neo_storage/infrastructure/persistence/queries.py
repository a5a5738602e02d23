"""Storage engine SQL query constants.

All queries are parameterized by schema. Updates are compare-and-swap: they
match on ``version`` and the caller checks the affected row count.
"""

# =====================================================================================
# PRINCIPALS, TEAMS AND MEMBERSHIPS
# =====================================================================================

PRINCIPAL_GET_BY_ID = """
    SELECT * FROM {schema}.principals
    WHERE id = $1
"""

PRINCIPAL_INSERT = """
    INSERT INTO {schema}.principals (
        id, username, quota_total, quota_used, user_type, status,
        template_id, version, created_at, updated_at
    ) VALUES (
        $1, $2, $3, $4, $5, $6, $7, $8, $9, $10
    )
"""

PRINCIPAL_COMPARE_AND_SET = """
    UPDATE {schema}.principals SET
        username = $2,
        quota_total = $3,
        quota_used = $4,
        user_type = $5,
        status = $6,
        template_id = $7,
        version = $8,
        updated_at = $9
    WHERE id = $1 AND version = $10
"""

TEAM_GET_BY_ID = """
    SELECT * FROM {schema}.teams
    WHERE id = $1
"""

TEAM_INSERT = """
    INSERT INTO {schema}.teams (
        id, name, creator_id, quota_total, quota_used, status,
        max_members, is_public, version, created_at, updated_at
    ) VALUES (
        $1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11
    )
"""

TEAM_COMPARE_AND_SET = """
    UPDATE {schema}.teams SET
        name = $2,
        quota_total = $3,
        quota_used = $4,
        status = $5,
        max_members = $6,
        is_public = $7,
        version = $8,
        updated_at = $9
    WHERE id = $1 AND version = $10
"""

MEMBERSHIP_LIST_BY_USER = """
    SELECT * FROM {schema}.team_memberships
    WHERE user_id = $1
    ORDER BY joined_at ASC
"""

MEMBERSHIP_GET = """
    SELECT * FROM {schema}.team_memberships
    WHERE team_id = $1 AND user_id = $2
"""

MEMBERSHIP_UPSERT = """
    INSERT INTO {schema}.team_memberships (
        team_id, user_id, role, status, joined_at
    ) VALUES (
        $1, $2, $3, $4, $5
    )
    ON CONFLICT (team_id, user_id) DO UPDATE SET
        role = EXCLUDED.role,
        status = EXCLUDED.status
"""

# =====================================================================================
# RESOURCES
# =====================================================================================

RESOURCE_GET_BY_ID = """
    SELECT * FROM {schema}.resources
    WHERE id = $1
"""

RESOURCE_INSERT = """
    INSERT INTO {schema}.resources (
        id, name, kind, owner_id, team_id, parent_id, path, size, status,
        storage_path, mime_type, is_public, share_expires_at, version,
        created_at, updated_at
    ) VALUES (
        $1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16
    )
"""

RESOURCE_COMPARE_AND_SET = """
    UPDATE {schema}.resources SET
        name = $2,
        parent_id = $3,
        path = $4,
        size = $5,
        status = $6,
        storage_path = $7,
        mime_type = $8,
        is_public = $9,
        share_expires_at = $10,
        version = $11,
        updated_at = $12
    WHERE id = $1 AND version = $13
"""

RESOURCE_LIST_CHILDREN = """
    SELECT * FROM {schema}.resources
    WHERE parent_id = $1 AND ($2::text IS NULL OR status = $2)
    ORDER BY name ASC
"""

RESOURCE_FIND_ACTIVE_CHILD = """
    SELECT * FROM {schema}.resources
    WHERE parent_id = $1 AND name = $2 AND status = 'active'
    LIMIT 1
"""

RESOURCE_FIND_ACTIVE_TEAM_ROOT = """
    SELECT * FROM {schema}.resources
    WHERE parent_id IS NULL AND team_id = $1 AND name = $2 AND status = 'active'
    LIMIT 1
"""

RESOURCE_FIND_ACTIVE_USER_ROOT = """
    SELECT * FROM {schema}.resources
    WHERE parent_id IS NULL AND team_id IS NULL AND owner_id = $1 AND name = $2 AND status = 'active'
    LIMIT 1
"""

RESOURCE_LIST_OWNED = """
    SELECT * FROM {schema}.resources
    WHERE owner_id = $1 AND ($2::text[] IS NULL OR status = ANY($2))
    ORDER BY created_at ASC
"""

# =====================================================================================
# GRANTS AND TEMPLATES
# =====================================================================================

GRANT_INSERT = """
    INSERT INTO {schema}.permission_grants (
        id, subject_kind, subject_id, scope_kind, resource_id, resource_type,
        action, allow, granted_by, granted_at, expires_at
    ) VALUES (
        $1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11
    )
"""

GRANT_GET_BY_ID = """
    SELECT * FROM {schema}.permission_grants
    WHERE id = $1
"""

GRANT_LIST_BY_RESOURCE = """
    SELECT * FROM {schema}.permission_grants
    WHERE scope_kind = 'resource' AND resource_id = $1
    ORDER BY granted_at ASC, id ASC
"""

GRANT_LIST_BY_SUBJECT = """
    SELECT * FROM {schema}.permission_grants
    WHERE subject_kind = $1 AND subject_id = $2
    ORDER BY granted_at ASC, id ASC
"""

TEMPLATE_INSERT = """
    INSERT INTO {schema}.permission_templates (
        id, name, description, is_default, is_system, storage_quota, created_at
    ) VALUES (
        $1, $2, $3, $4, $5, $6, $7
    )
"""

TEMPLATE_GET_BY_ID = """
    SELECT * FROM {schema}.permission_templates
    WHERE id = $1
"""

TEMPLATE_GET_DEFAULT = """
    SELECT * FROM {schema}.permission_templates
    WHERE is_default = true
    ORDER BY created_at DESC, id DESC
    LIMIT 1
"""

# =====================================================================================
# RECYCLE ENTRIES AND BINS
# =====================================================================================

RECYCLE_ENTRY_INSERT = """
    INSERT INTO {schema}.recycle_entries (
        id, resource_id, owner_id, team_id, resource_kind, file_name,
        original_parent_id, original_path, size, storage_path, mime_type,
        deleted_by, deleted_at, expires_at, notify_at, retention_days,
        episode_root_id, deleted_reason, status, restored_at, restored_by,
        restored_path, permanent_deleted_at, permanent_deleted_by, purge_reason,
        notified_at, version
    ) VALUES (
        $1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16,
        $17, $18, $19, $20, $21, $22, $23, $24, $25, $26, $27
    )
"""

RECYCLE_ENTRY_GET_BY_ID = """
    SELECT * FROM {schema}.recycle_entries
    WHERE id = $1
"""

RECYCLE_ENTRY_COMPARE_AND_SET = """
    UPDATE {schema}.recycle_entries SET
        status = $2,
        restored_at = $3,
        restored_by = $4,
        restored_path = $5,
        permanent_deleted_at = $6,
        permanent_deleted_by = $7,
        purge_reason = $8,
        notified_at = $9,
        version = $10
    WHERE id = $1 AND version = $11
"""

RECYCLE_ENTRY_GET_OPEN_BY_RESOURCE = """
    SELECT * FROM {schema}.recycle_entries
    WHERE resource_id = $1 AND status = 'deleted'
    LIMIT 1
"""

RECYCLE_ENTRY_LIST_BY_EPISODE = """
    SELECT * FROM {schema}.recycle_entries
    WHERE episode_root_id = $1
    ORDER BY id ASC
"""

RECYCLE_ENTRY_LIST_OLDEST_OPEN = """
    SELECT * FROM {schema}.recycle_entries
    WHERE owner_id = $1 AND status = 'deleted'
    ORDER BY deleted_at ASC, id ASC
    LIMIT $2
"""

RECYCLE_ENTRY_LIST_EXPIRED = """
    SELECT * FROM {schema}.recycle_entries
    WHERE status = 'deleted' AND expires_at <= $1
    AND ($2::uuid IS NULL OR id > $2)
    ORDER BY id ASC
    LIMIT $3
"""

RECYCLE_ENTRY_LIST_NOTIFICATION_CANDIDATES = """
    SELECT * FROM {schema}.recycle_entries
    WHERE status = 'deleted' AND notified_at IS NULL
    AND notify_at <= $1 AND expires_at > $1
    AND ($2::uuid IS NULL OR id > $2)
    ORDER BY id ASC
    LIMIT $3
"""

RECYCLE_BIN_GET = """
    SELECT * FROM {schema}.recycle_bins
    WHERE user_id = $1
"""

RECYCLE_BIN_INSERT = """
    INSERT INTO {schema}.recycle_bins (
        user_id, is_enabled, retention_days, notify_before_delete, notify_days,
        max_storage_bytes, max_item_count, current_storage_bytes, current_item_count,
        total_deleted, total_restored, total_permanent, version, created_at, updated_at
    ) VALUES (
        $1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15
    )
"""

RECYCLE_BIN_COMPARE_AND_SET = """
    UPDATE {schema}.recycle_bins SET
        is_enabled = $2,
        retention_days = $3,
        notify_before_delete = $4,
        notify_days = $5,
        max_storage_bytes = $6,
        max_item_count = $7,
        current_storage_bytes = $8,
        current_item_count = $9,
        total_deleted = $10,
        total_restored = $11,
        total_permanent = $12,
        version = $13,
        updated_at = $14
    WHERE user_id = $1 AND version = $15
"""

# =====================================================================================
# AUDIT EVENTS
# =====================================================================================

AUDIT_EVENT_INSERT = """
    INSERT INTO {schema}.audit_events (
        id, event_type, outcome, occurred_at, actor_id, resource_id, entry_id, details
    ) VALUES (
        $1, $2, $3, $4, $5, $6, $7, $8
    )
"""
