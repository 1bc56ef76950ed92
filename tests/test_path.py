import pytest

from dnode.exception import ArgumentError
from dnode.path import Path


@pytest.fixture
def tree():
    yield [
        'alice',
        {'reply': '[Function]', 'options': {'a.b': [1, 2, 3]}},
        {'0': 'string key', 1: 'integer key'},
    ]


def test_format():
    assert Path().format() == ''
    assert Path([0]).format() == '0'
    assert Path([1, 'reply']).format() == '1.reply'
    assert Path([1, 'options', 'a.b', 2]).format() == '1.options.a\\.b.2'
    assert Path(['back\\slash']).format() == 'back\\\\slash'


def test_parse():
    assert Path.parse('') == Path()
    assert Path.parse('0') == Path(['0'])
    assert Path.parse('1.reply') == Path(['1', 'reply'])
    assert Path.parse('1.options.a\\.b.2') == Path(['1', 'options', 'a.b', '2'])
    assert Path.parse('back\\\\slash') == Path(['back\\slash'])
    assert Path.parse('a..b') == Path(['a', '', 'b'])
    assert Path.parse(3) == Path([3])
    assert Path.parse([1, 'reply']) == Path([1, 'reply'])


def test_parse_inverts_format():
    for keys in (['x'], ['a.b', '\\', 'c\\.d'], ['.', '..', '']):
        path = Path(keys)
        assert Path.parse(path.format()) == path


@pytest.mark.parametrize('encoded', ['trailing\\', True, None, 1.5, [0, None], {'a': 1}])
def test_parse_invalid(encoded):
    with pytest.raises(ArgumentError):
        Path.parse(encoded)


def test_equality():
    assert Path([0, 'a']) == Path([0, 'a'])
    assert Path([0, 'a']) != Path(['a', 0])
    assert Path([0]) != Path([0, 'a'])
    assert hash(Path([0, 'a'])) == hash(Path([0, 'a']))
    assert Path([0]).child('a') == Path([0, 'a'])
    assert Path([0]) + ['a', 1] == Path([0, 'a', 1])
    assert isinstance(Path([0]) + ['a'], Path)


def test_get(tree):
    assert Path().get(tree) is tree
    assert Path.parse('0').get(tree) == 'alice'
    assert Path.parse('1.reply').get(tree) == '[Function]'
    assert Path.parse('1.options.a\\.b.2').get(tree) == 3
    assert Path([1, 'options', 'a.b', 0]).get(tree) == 1
    assert Path.parse('2.0').get(tree) == 'string key'
    assert Path.parse('2.1').get(tree) == 'integer key'
    assert Path([2, 0]).get(tree) == 'string key'


@pytest.mark.parametrize('encoded', ['3', '-1', 'x', '1.missing', '0.0', '1.options.a\\.b.3'])
def test_get_missing(tree, encoded):
    with pytest.raises(ArgumentError):
        Path.parse(encoded).get(tree)


def test_set(tree):
    tree = Path.parse('1.reply').set(tree, 'stub')
    assert tree[1]['reply'] == 'stub'
    tree = Path.parse('1.options.a\\.b.0').set(tree, 'stub')
    assert tree[1]['options']['a.b'] == ['stub', 2, 3]
    assert Path().set(tree, 'root') == 'root'


def test_set_missing(tree):
    with pytest.raises(ArgumentError):
        Path.parse('1.absent').set(tree, 'stub')
    with pytest.raises(ArgumentError):
        Path.parse('5').set(tree, 'stub')
    with pytest.raises(ArgumentError):
        Path.parse('0').set(('immutable',), 'stub')
