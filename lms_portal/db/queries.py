"""
Small read helpers shared by the feature routers.

Rows are fetched with separate queries and stitched together in Python
instead of relying on embedded-resource selects.
"""
from typing import Dict, Iterable, List

from supabase import Client


def rows_by_ids(client: Client, table: str, ids: Iterable[str], column: str = "id",
                columns: str = "*") -> List[dict]:
    wanted = sorted({value for value in ids if value})
    if not wanted:
        return []
    return client.table(table).select(columns).in_(column, wanted).execute().data


def index_by(rows: Iterable[dict], key: str = "id") -> Dict[str, dict]:
    return {row[key]: row for row in rows}


def users_by_id(client: Client, user_ids: Iterable[str]) -> Dict[str, dict]:
    return index_by(rows_by_ids(client, "users", user_ids, columns="id, name, email, role, image_url"))


def profiles_with_users(client: Client, table: str, profile_ids: Iterable[str]) -> List[dict]:
    """Teacher or student profile rows with a nested ``user`` entry."""
    profiles = rows_by_ids(client, table, profile_ids)
    users = users_by_id(client, [profile["user_id"] for profile in profiles])
    return [{**profile, "user": users.get(profile["user_id"])} for profile in profiles]


def link_rows(client: Client, table: str, column: str, value: str, target: str) -> List[str]:
    """Ids on the ``target`` side of a join table for one ``column`` value."""
    rows = client.table(table).select(target).eq(column, value).execute().data
    return [row[target] for row in rows]


def insert_links(client: Client, table: str, column: str, value: str, target: str,
                 ids: Iterable[str]) -> None:
    """Insert one join row per distinct id; repeated ids collapse to one pair."""
    rows = [{column: value, target: item} for item in dict.fromkeys(str(item) for item in ids)]
    if rows:
        client.table(table).insert(rows).execute()
