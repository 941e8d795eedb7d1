"""Read-only reports for the staff analytics pages.

Every report covers a trailing window of ``days`` days. Per-day series are
bucketed in Python so the same queries run on SQLite and Postgres.
"""
from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any

from prisonrp.extensions import db
from prisonrp.services.db import format_timestamp, parse_timestamp

MAX_DAYS = 365


def window_start(days: int, now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return format_timestamp(now - timedelta(days=days))


def _per_day(rows: list[dict], column: str) -> Counter:
    days: Counter = Counter()
    for row in rows:
        stamp = parse_timestamp(row[column])
        if stamp is not None:
            days[stamp.date().isoformat()] += 1
    return days


def content_stats(days: int = 30) -> dict[str, Any]:
    since = window_start(days)
    rule_stats = db.get(
        """
        SELECT
            COUNT(*) AS total_rules,
            SUM(CASE WHEN parent_rule_id IS NULL THEN 1 ELSE 0 END) AS main_rules,
            SUM(CASE WHEN parent_rule_id IS NOT NULL THEN 1 ELSE 0 END) AS sub_rules,
            SUM(CASE WHEN title IS NOT NULL AND title <> '' THEN 1 ELSE 0 END) AS rules_with_titles,
            SUM(CASE WHEN images IS NOT NULL AND images NOT IN ('', '[]') THEN 1 ELSE 0 END) AS rules_with_images,
            SUM(CASE WHEN created_at >= %s THEN 1 ELSE 0 END) AS recent_rules
        FROM rules WHERE is_active = %s
        """,
        (since, True),
    )
    announcement_stats = db.get(
        """
        SELECT
            COUNT(*) AS total_announcements,
            SUM(CASE WHEN is_active = %s THEN 1 ELSE 0 END) AS active_announcements,
            SUM(CASE WHEN priority >= 4 THEN 1 ELSE 0 END) AS high_priority_announcements,
            SUM(CASE WHEN announcement_type = 'scheduled' THEN 1 ELSE 0 END) AS scheduled_announcements,
            SUM(CASE WHEN created_at >= %s THEN 1 ELSE 0 END) AS recent_announcements,
            AVG(priority) AS avg_priority
        FROM announcements
        """,
        (True, since),
    )
    # SUM over zero rows is NULL
    rule_stats = {key: int(value or 0) for key, value in rule_stats.items()}
    avg_priority = announcement_stats.pop('avg_priority')
    announcement_stats = {key: int(value or 0) for key, value in announcement_stats.items()}
    announcement_stats['avg_priority'] = round(float(avg_priority), 2) if avg_priority is not None else 0.0

    category_stats = db.all(
        """
        SELECT c.id, c.letter_code, c.name,
               COUNT(r.id) AS rule_count,
               SUM(CASE WHEN r.id IS NOT NULL AND r.parent_rule_id IS NULL THEN 1 ELSE 0 END) AS main_rules_count,
               SUM(CASE WHEN r.parent_rule_id IS NOT NULL THEN 1 ELSE 0 END) AS sub_rules_count
        FROM categories c
        LEFT JOIN rules r ON c.id = r.category_id AND r.is_active = %s
        GROUP BY c.id, c.letter_code, c.name, c.order_index
        ORDER BY c.order_index
        """,
        (True,),
    )
    for row in category_stats:
        row['main_rules_count'] = int(row['main_rules_count'] or 0)
        row['sub_rules_count'] = int(row['sub_rules_count'] or 0)

    new_rules = _per_day(db.all("SELECT created_at FROM rules WHERE created_at >= %s", (since,)), 'created_at')
    new_announcements = _per_day(
        db.all("SELECT created_at FROM announcements WHERE created_at >= %s", (since,)), 'created_at'
    )
    trends = [
        {'creation_date': day, 'content_type': 'rule', 'count': count}
        for day, count in new_rules.items()
    ] + [
        {'creation_date': day, 'content_type': 'announcement', 'count': count}
        for day, count in new_announcements.items()
    ]
    trends.sort(key=lambda row: (row['creation_date'], row['content_type']), reverse=True)

    most_active = max(category_stats, key=lambda row: row['rule_count'], default=None)
    if most_active is not None and most_active['rule_count'] == 0:
        most_active = None
    return {
        'period': f'{days} days',
        'ruleStats': rule_stats,
        'announcementStats': announcement_stats,
        'categoryStats': category_stats,
        'contentTrends': trends,
        'insights': {
            'totalContent': rule_stats['total_rules'] + announcement_stats['total_announcements'],
            'recentContentCreated': rule_stats['recent_rules'] + announcement_stats['recent_announcements'],
            'avgRulesPerCategory': (
                sum(row['rule_count'] for row in category_stats) / len(category_stats)
                if category_stats else 0
            ),
            'mostActiveCategory': most_active,
        },
    }


def search_trends(days: int = 30, limit: int = 20) -> dict[str, Any]:
    since = window_start(days)
    popular = db.all(
        """
        SELECT LOWER(query) AS query, COUNT(*) AS search_count,
               AVG(results_count) AS avg_results, MAX(search_date) AS last_searched
        FROM search_history
        WHERE search_date >= %s
        GROUP BY LOWER(query)
        ORDER BY search_count DESC, query ASC
        LIMIT %s
        """,
        (since, limit),
    )
    no_results = db.all(
        """
        SELECT LOWER(query) AS query, COUNT(*) AS search_count, MAX(search_date) AS last_searched
        FROM search_history
        WHERE search_date >= %s AND results_count = 0
        GROUP BY LOWER(query)
        ORDER BY search_count DESC, query ASC
        LIMIT %s
        """,
        (since, limit),
    )
    for row in popular:
        row['avg_results'] = round(float(row['avg_results'] or 0), 2)

    history = db.all(
        "SELECT query, results_count, search_date FROM search_history WHERE search_date >= %s",
        (since,),
    )
    volume: dict[str, dict[str, Any]] = {}
    for row in history:
        stamp = parse_timestamp(row['search_date'])
        if stamp is None:
            continue
        day = volume.setdefault(stamp.date().isoformat(), {'searches': 0, 'queries': set(), 'results': 0})
        day['searches'] += 1
        day['queries'].add(row['query'].lower())
        day['results'] += row['results_count']
    search_volume = [
        {
            'search_date': day,
            'search_count': totals['searches'],
            'unique_queries': len(totals['queries']),
            'avg_results_per_search': round(totals['results'] / totals['searches'], 2),
        }
        for day, totals in sorted(volume.items(), reverse=True)
    ]

    return {
        'period': f'{days} days',
        'popularQueries': popular,
        'searchVolume': search_volume,
        'noResultQueries': no_results,
        'insights': {
            'totalSearches': len(history),
            'uniqueQueries': len({row['query'].lower() for row in history}),
            'avgResultsPerSearch': (
                round(sum(row['results_count'] for row in history) / len(history), 2) if history else 0
            ),
        },
    }


def staff_activity(days: int = 30, staff_user_id: int | None = None, detailed: bool = False) -> dict[str, Any]:
    since = window_start(days)
    user_filter = ""
    params: list[Any] = [False, since, True]
    if staff_user_id is not None:
        user_filter = " AND su.id = %s"
        params.append(staff_user_id)

    summary = db.all(
        f"""
        SELECT su.id, su.username, su.permission_level,
               COUNT(l.id) AS total_actions,
               SUM(CASE WHEN l.action_type = 'create' THEN 1 ELSE 0 END) AS creates,
               SUM(CASE WHEN l.action_type = 'update' THEN 1 ELSE 0 END) AS updates,
               SUM(CASE WHEN l.action_type = 'delete' THEN 1 ELSE 0 END) AS deletes,
               SUM(CASE WHEN l.action_type = 'approve' THEN 1 ELSE 0 END) AS approvals,
               SUM(CASE WHEN l.action_type = 'reject' THEN 1 ELSE 0 END) AS rejections,
               SUM(CASE WHEN l.resource_type = 'rule' THEN 1 ELSE 0 END) AS rule_actions,
               SUM(CASE WHEN l.resource_type = 'announcement' THEN 1 ELSE 0 END) AS announcement_actions,
               SUM(CASE WHEN l.resource_type = 'category' THEN 1 ELSE 0 END) AS category_actions,
               SUM(CASE WHEN l.resource_type = 'image' THEN 1 ELSE 0 END) AS image_actions,
               SUM(CASE WHEN l.success = %s THEN 1 ELSE 0 END) AS failed_actions,
               MIN(l.created_at) AS first_action,
               MAX(l.created_at) AS last_action
        FROM staff_users su
        LEFT JOIN staff_activity_logs l ON l.staff_user_id = su.id AND l.created_at >= %s
        WHERE su.is_active = %s{user_filter}
        GROUP BY su.id, su.username, su.permission_level
        ORDER BY total_actions DESC, su.username ASC
        """,
        params,
    )
    counted = ('creates', 'updates', 'deletes', 'approvals', 'rejections', 'rule_actions',
               'announcement_actions', 'category_actions', 'image_actions', 'failed_actions')
    for row in summary:
        for key in counted:
            row[key] = int(row[key] or 0)

    total = sum(row['total_actions'] for row in summary)
    report: dict[str, Any] = {
        'period': f'{days} days',
        'activitySummary': summary,
        'insights': {
            'totalStaffMembers': len(summary),
            'activeStaffMembers': sum(1 for row in summary if row['total_actions'] > 0),
            'totalActions': total,
            'avgActionsPerStaff': total / len(summary) if summary else 0,
        },
    }

    if detailed:
        log_filter = ""
        log_params: list[Any] = [since]
        if staff_user_id is not None:
            log_filter = " AND staff_user_id = %s"
            log_params.append(staff_user_id)
        logs = db.all(
            f"""
            SELECT action_type, resource_type, success, created_at
            FROM staff_activity_logs WHERE created_at >= %s{log_filter}
            """,
            log_params,
        )
        daily: Counter = Counter()
        outcomes: dict[tuple[str, str], Counter] = {}
        for row in logs:
            stamp = parse_timestamp(row['created_at'])
            if stamp is not None:
                daily[(stamp.date().isoformat(), row['action_type'], row['resource_type'])] += 1
            outcome = outcomes.setdefault((row['action_type'], row['resource_type']), Counter())
            outcome['successful' if row['success'] else 'failed'] += 1
        report['dailyActivity'] = [
            {'activity_date': day, 'action_type': action, 'resource_type': resource, 'action_count': count}
            for (day, action, resource), count in sorted(daily.items(), reverse=True)
        ]
        report['actionOutcomes'] = sorted(
            (
                {
                    'action_type': action,
                    'resource_type': resource,
                    'successful_actions': counts['successful'],
                    'failed_actions': counts['failed'],
                    'total_actions': counts['successful'] + counts['failed'],
                }
                for (action, resource), counts in outcomes.items()
            ),
            key=lambda row: row['total_actions'],
            reverse=True,
        )
    return report


def rule_views(days: int = 30, limit: int = 20, category_id: int | None = None) -> dict[str, Any]:
    """Published rules ranked by how often they come up in searches and staff actions."""
    since = window_start(days)
    category_filter = ""
    params: list[Any] = [since, since, True]
    if category_id is not None:
        category_filter = " AND r.category_id = %s"
        params.append(category_id)
    params.append(limit)

    rows = db.all(
        f"""
        SELECT id, title, full_code, category_name, letter_code, search_mentions, staff_actions,
               search_mentions + staff_actions AS total_activity
        FROM (
            SELECT r.id, r.title, r.full_code, r.category_id, c.name AS category_name,
                   c.letter_code, c.order_index, r.rule_number, r.sub_number,
                   (SELECT COUNT(*) FROM search_history sh
                    WHERE sh.search_date >= %s
                      AND (LOWER(sh.query) LIKE '%' || LOWER(r.full_code) || '%'
                           OR (r.title IS NOT NULL
                               AND LOWER(sh.query) LIKE '%' || LOWER(r.title) || '%'))
                   ) AS search_mentions,
                   (SELECT COUNT(*) FROM staff_activity_logs l
                    WHERE l.resource_type = 'rule' AND l.resource_id = r.id AND l.created_at >= %s
                   ) AS staff_actions
            FROM rules r
            JOIN categories c ON r.category_id = c.id
            WHERE r.is_active = %s AND r.status = 'approved'{category_filter}
        ) ranked
        ORDER BY total_activity DESC, search_mentions DESC,
                 order_index, rule_number, COALESCE(sub_number, 0)
        LIMIT %s
        """,
        params,
    )
    return {'period': f'{days} days', 'rules': rows, 'totalRules': len(rows)}


def system_health(days: int = 30) -> dict[str, Any]:
    """Failed staff actions and sign-in activity."""
    since = window_start(days)
    error_stats = db.all(
        """
        SELECT action_type, resource_type, error_message,
               COUNT(*) AS error_count, MAX(created_at) AS last_error
        FROM staff_activity_logs
        WHERE success = %s AND created_at >= %s
        GROUP BY action_type, resource_type, error_message
        ORDER BY error_count DESC
        LIMIT 20
        """,
        (False, since),
    )
    totals = db.get(
        "SELECT COUNT(*) AS total_actions FROM staff_activity_logs WHERE created_at >= %s",
        (since,),
    )
    auth_rows = db.all(
        """
        SELECT action_type, success, created_at FROM staff_activity_logs
        WHERE resource_type = 'auth' AND created_at >= %s
        """,
        (since,),
    )
    auth_days: dict[str, Counter] = {}
    for row in auth_rows:
        stamp = parse_timestamp(row['created_at'])
        if stamp is None:
            continue
        day = auth_days.setdefault(stamp.date().isoformat(), Counter())
        if row['action_type'] == 'login':
            day['logins' if row['success'] else 'failed_logins'] += 1
        elif row['action_type'] == 'logout':
            day['logouts'] += 1

    total_errors = sum(row['error_count'] for row in error_stats)
    total_actions = totals['total_actions']
    return {
        'period': f'{days} days',
        'errorStats': error_stats,
        'authStats': [
            {
                'auth_date': day,
                'logins': counts['logins'],
                'logouts': counts['logouts'],
                'failed_logins': counts['failed_logins'],
            }
            for day, counts in sorted(auth_days.items(), reverse=True)
        ],
        'insights': {
            'totalActions': total_actions,
            'totalErrors': total_errors,
            'errorRate': f'{total_errors / total_actions * 100:.2f}%' if total_actions else '0%',
        },
    }


__all__ = [
    'MAX_DAYS',
    'window_start',
    'content_stats',
    'search_trends',
    'staff_activity',
    'rule_views',
    'system_health',
]
