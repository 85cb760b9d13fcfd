import pytest

from cytogate.core.ellipsoid import EllipsoidGate
from cytogate.core.gates import BooleanGate, Operation, RectangularGate
from cytogate.core.hierarchy import GateTree


def _rect(dim="X", lo=0, hi=None):
    return RectangularGate([dim], [(lo, hi)])


@pytest.fixture
def tree():
    """
    root
      a
        a1
        a2
        a3
      b
    other
    """
    t = GateTree()
    t.add("root", _rect())
    t.add("a", _rect(lo=2), parent="root")
    t.add("a1", _rect(lo=4), parent="a")
    t.add("a2", _rect(lo=6), parent="a")
    t.add("a3", _rect(lo=8), parent="a")
    t.add("b", _rect("Y", lo=10), parent="root")
    t.add("other", _rect("Y", hi=3))
    return t


# -----------------------------
# Structure queries
# -----------------------------
def test_lookup_by_name_and_index(tree):
    assert len(tree) == 7
    assert "a2" in tree
    assert "zzz" not in tree
    a2 = tree.index_of("a2")
    assert tree.name(a2) == "a2"
    assert tree.node("a2").gate is tree.gate(a2)
    assert tree.parent("a2") == tree.index_of("a")
    assert tree.index_of("zzz") is None

    with pytest.raises(KeyError):
        tree.node("zzz")
    with pytest.raises(IndexError):
        tree.node(99)


def test_roots_and_ancestors(tree):
    assert [tree.name(i) for i in tree.roots()] == ["root", "other"]
    assert [tree.name(i) for i in tree.ancestors("a3")] == ["a", "root"]
    assert tree.name(tree.root_of("a3")) == "root"
    assert tree.root_of("other") == tree.index_of("other")


def test_siblings(tree):
    assert tree.name(tree.previous_sibling("a2")) == "a1"
    assert tree.name(tree.next_sibling("a2")) == "a3"
    assert tree.previous_sibling("a1") is None
    assert tree.next_sibling("a3") is None
    assert tree.next_sibling("root") is None


def test_predicate_searches(tree):
    found = tree.descendant("a", lambda node: node.name.endswith("2"))
    assert tree.name(found) == "a2"
    # direct children only
    assert tree.descendant("root", lambda node: node.name == "a2") is None

    up = tree.ancestor("a3", lambda node: node.gate.dimensions == ("X",))
    assert tree.name(up) == "a"
    assert tree.ancestor("root", lambda node: True) is None


def test_walk_is_preorder(tree):
    assert [tree.name(i) for i in tree.walk()] == ["root", "a", "a1", "a2", "a3", "b", "other"]
    assert [tree.name(i) for i in tree.walk("a")] == ["a", "a1", "a2", "a3"]


def test_format_outline(tree):
    lines = tree.format().splitlines()
    assert lines[0] == "- root [rectangle: X]"
    assert lines[2] == "    - a1 [rectangle: X]"
    assert lines[-1] == "- other [rectangle: Y]"


# -----------------------------
# Editing
# -----------------------------
def test_duplicate_name_rejected(tree):
    with pytest.raises(ValueError, match="Duplicate"):
        tree.add("a", _rect())
    with pytest.raises(TypeError):
        tree.add("new", "not a gate")


def test_failed_add_leaves_tree_unchanged(tree):
    with pytest.raises(KeyError):
        tree.add("child", _rect(), parent="nope")
    assert len(tree) == 7
    assert "child" not in tree

    index = tree.add("child", _rect(), parent="b")
    assert tree.name(tree.parent(index)) == "b"
    assert tree.children("b") == (index,)


def test_move_child_detaches_from_old_parent(tree):
    tree.append_child("other", "a2")
    assert [tree.name(c) for c in tree.children("a")] == ["a1", "a3"]
    assert [tree.name(c) for c in tree.children("other")] == ["a2"]
    assert tree.name(tree.parent("a2")) == "other"

    tree.prepend_child("a", "b")
    assert [tree.name(c) for c in tree.children("a")] == ["b", "a1", "a3"]
    assert [tree.name(c) for c in tree.children("root")] == ["a"]


def test_cycles_are_refused(tree):
    with pytest.raises(ValueError):
        tree.append_child("a1", "root")
    with pytest.raises(ValueError):
        tree.append_child("a", "a")
    # unchanged
    assert tree.parent("root") is None


def test_remove_children(tree):
    tree.remove_child("a", "a2")
    assert tree.parent("a2") is None
    assert tree.index_of("a2") in tree.roots()
    with pytest.raises(ValueError):
        tree.remove_child("a", "a2")

    tree.remove_all_children("a")
    assert tree.children("a") == ()
    assert tree.parent("a1") is None


def test_sort_children(tree):
    tree.add("a0", _rect(), parent="a")
    tree.sort_children("a")
    assert [tree.name(c) for c in tree.children("a")] == ["a0", "a1", "a2", "a3"]
    tree.sort_children("a", key=lambda node: -node.gate.ranges[0][0])
    assert [tree.name(c) for c in tree.children("a")] == ["a3", "a2", "a1", "a0"]


def test_insert_sibling(tree):
    tree.insert_sibling("a1", "b")
    assert [tree.name(c) for c in tree.children("a")] == ["a1", "a2", "a3", "b"]
    with pytest.raises(ValueError):
        tree.insert_sibling("root", "other")


# -----------------------------
# Applying a tree
# -----------------------------
def test_apply_gates_children_within_parents(grid_sample):
    t = GateTree()
    t.add("right", RectangularGate(["X"], [(6, None)]))
    t.add("right top", RectangularGate(["Y"], [(6, None)]), parent="right")
    t.add("not top", BooleanGate(Operation.NOT, [t.gate("right top")]), parent="right")
    t.add("left", RectangularGate(["X"], [(None, 6)]))

    pops = t.apply(grid_sample)
    assert list(pops) == ["right", "right top", "not top", "left"]
    assert pops["right"].count == 7 * 13
    assert pops["right top"].count == 7 * 7
    assert pops["not top"].count == 7 * 6
    assert pops["left"].count == 6 * 13


def test_apply_skips_failed_subtree(grid_sample, caplog):
    t = GateTree()
    t.add("ok", _rect(lo=1))
    t.add("bad", EllipsoidGate(["X", "Y"], [0, 0], [1, 2, 3, 4], 1), parent="ok")
    t.add("under bad", _rect(lo=2), parent="bad")
    t.add("missing", _rect("CD8"), parent="ok")
    t.add("sibling", _rect(lo=3), parent="ok")

    with caplog.at_level("WARNING", logger="cytogate"):
        pops = t.apply(grid_sample)

    assert list(pops) == ["ok", "sibling"]
    assert pops["sibling"].count == 10 * 13
    assert "Gate 'bad' failed" in caplog.text
    assert "1 descendant gate(s)" in caplog.text
    assert "Gate 'missing' failed" in caplog.text
