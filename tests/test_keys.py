from counter_service.core.keys import KeyNamer, escape_label


def test_derive_key_uses_prefix_and_namespace():
    assert KeyNamer("counter").derive_key("foobar") == "counter.next.foobar"


def test_derive_key_is_deterministic():
    namer = KeyNamer("svc")
    assert namer.derive_key("abc") == namer.derive_key("abc")


def test_separator_inside_label_is_escaped():
    assert KeyNamer("counter").derive_key("a.b") == "counter.next.a\\.b"


def test_labels_that_would_collide_unescaped_stay_distinct():
    namer = KeyNamer("counter")
    labels = ["a.b", "a\\.b", "a\\", "a\\\\", "a..b"]
    keys = {namer.derive_key(label) for label in labels}
    assert len(keys) == len(labels)


def test_escape_label_leaves_plain_labels_untouched():
    assert escape_label("Default123") == "Default123"
