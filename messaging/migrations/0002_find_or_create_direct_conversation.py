"""
Install the `find_or_create_direct_conversation` database function.

The function performs the whole direct-conversation find-or-create
inside one transaction: it claims the canonical pair key with
``ON CONFLICT DO NOTHING`` and upserts both participant rows, so
concurrent callers always converge on the same conversation.  Only
PostgreSQL gets the function; other backends fall back to the manual
path in ``messaging.directory``.
"""
from django.db import migrations


CREATE_FUNCTION = """
CREATE OR REPLACE FUNCTION find_or_create_direct_conversation(user1_id bigint, user2_id bigint)
RETURNS uuid
LANGUAGE plpgsql
AS $$
DECLARE
    pair_key text;
    conv_id uuid;
BEGIN
    IF user1_id = user2_id THEN
        RAISE EXCEPTION 'a direct conversation needs two distinct users';
    END IF;

    pair_key := LEAST(user1_id, user2_id)::text || ':' || GREATEST(user1_id, user2_id)::text;

    INSERT INTO messaging_conversation (id, type, direct_key, created_at, updated_at)
    VALUES (gen_random_uuid(), 'direct', pair_key, now(), now())
    ON CONFLICT (direct_key) DO NOTHING;

    SELECT id INTO conv_id FROM messaging_conversation WHERE direct_key = pair_key;

    INSERT INTO messaging_conversationparticipant (conversation_id, user_id, joined_at)
    VALUES (conv_id, user1_id, now()), (conv_id, user2_id, now())
    ON CONFLICT (conversation_id, user_id) DO NOTHING;

    RETURN conv_id;
END;
$$;
"""

DROP_FUNCTION = "DROP FUNCTION IF EXISTS find_or_create_direct_conversation(bigint, bigint);"


def create_function(apps, schema_editor):
    if schema_editor.connection.vendor != "postgresql":
        return
    schema_editor.execute(CREATE_FUNCTION)


def drop_function(apps, schema_editor):
    if schema_editor.connection.vendor != "postgresql":
        return
    schema_editor.execute(DROP_FUNCTION)


class Migration(migrations.Migration):

    dependencies = [
        ("messaging", "0001_initial"),
    ]

    operations = [
        migrations.RunPython(create_function, drop_function),
    ]
