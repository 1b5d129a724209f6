import pytest

from shared.config.settings import ORDERS_DOMAIN, USERS_DOMAIN, SchemaMapping
from shared.db.schema_router import SchemaRouter


@pytest.fixture
def router():
    return SchemaRouter(SchemaMapping(enabled=True))


@pytest.fixture
def legacy_router():
    return SchemaRouter(SchemaMapping(enabled=False))


def test_resolve_schema_with_flag_on(router):
    assert router.resolve_schema(USERS_DOMAIN) == "users_schema"
    assert router.resolve_schema(ORDERS_DOMAIN) == "orders_schema"


def test_resolve_schema_with_flag_off_is_always_default(legacy_router):
    assert legacy_router.resolve_schema(USERS_DOMAIN) == "public"
    assert legacy_router.resolve_schema(ORDERS_DOMAIN) == "public"
    assert legacy_router.resolve_schema(None) == "public"


@pytest.mark.parametrize(
    "sql, domain",
    [
        ("SELECT * FROM users WHERE id = :id", USERS_DOMAIN),
        ("select * from order_items where order_id = :id", ORDERS_DOMAIN),
        ("INSERT INTO orders (user_id) VALUES (:user_id)", ORDERS_DOMAIN),
        ("UPDATE users SET name = :name WHERE id = :id", USERS_DOMAIN),
        ("SELECT 1", None),
        ("SELECT * FROM products", None),
    ],
)
def test_detect_domain(router, sql, domain):
    assert router.detect_domain(sql) == domain


def test_sql_without_known_table_passes_through(router):
    sql = "SELECT now() FROM products"
    assert router.rewrite(sql) == sql


def test_rewrite_qualifies_table_references(router):
    sql = "SELECT id, name FROM users WHERE id = :id"
    assert router.rewrite(sql) == "SELECT id, name FROM users_schema.users WHERE id = :id"


def test_rewrite_qualifies_joins_and_column_references(router):
    sql = (
        "SELECT orders.id, order_items.total FROM orders "
        "JOIN order_items ON order_items.order_id = orders.id"
    )
    assert router.rewrite(sql) == (
        "SELECT orders_schema.orders.id, orders_schema.order_items.total FROM orders_schema.orders "
        "JOIN orders_schema.order_items ON orders_schema.order_items.order_id = orders_schema.orders.id"
    )


def test_rewrite_leaves_other_domains_alone(router):
    sql = "SELECT * FROM orders JOIN users ON users.id = orders.user_id"
    rewritten = router.rewrite(sql, ORDERS_DOMAIN)
    assert rewritten == (
        "SELECT * FROM orders_schema.orders JOIN users ON users.id = orders_schema.orders.user_id"
    )


@pytest.mark.parametrize(
    "sql",
    [
        "SELECT * FROM users WHERE id = :id",
        "select users.email from users where users.id = $1",
        "INSERT INTO order_items (order_id, total) VALUES (:order_id, :total) RETURNING id",
        "UPDATE orders SET status = 'shipped' WHERE orders.id = :id",
        "DELETE FROM public.users WHERE id = :id",
    ],
)
def test_rewrite_is_idempotent(router, sql):
    once = router.rewrite(sql)
    assert router.rewrite(once) == once


def test_existing_schema_qualifier_is_replaced_not_prefixed(router):
    assert router.rewrite("DELETE FROM public.users WHERE id = :id") == (
        "DELETE FROM users_schema.users WHERE id = :id"
    )


def test_string_literals_and_bind_names_are_untouched(router):
    sql = "SELECT * FROM users WHERE name = 'from users' AND email = :users"
    assert router.rewrite(sql) == (
        "SELECT * FROM users_schema.users WHERE name = 'from users' AND email = :users"
    )


def test_forced_schema_overrides_resolution(router):
    sql = "SELECT * FROM users"
    assert router.rewrite(sql, USERS_DOMAIN, schema="public") == "SELECT * FROM public.users"
    # switching targets is still a clean replacement
    assert router.rewrite(router.rewrite(sql), USERS_DOMAIN, schema="public") == "SELECT * FROM public.users"


def test_flag_off_rewrites_to_default_schema(legacy_router):
    assert legacy_router.rewrite("SELECT * FROM orders") == "SELECT * FROM public.orders"


def test_table_refs_report_role_and_qualifier(router):
    refs = router.table_refs("insert into public.orders (user_id) select id from users")
    assert [(ref.table, ref.role, ref.schema) for ref in refs] == [
        ("orders", "INTO", "public"),
        ("users", "FROM", None),
    ]
    assert refs[0].qualified == "public.orders"
