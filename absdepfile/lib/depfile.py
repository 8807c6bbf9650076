"""Resolve relative paths in a compiler-generated dependency file.

A depfile produced by ``cc -MD -MF foo.d`` looks like::

    /build/foo.o: foo.c \\
        include/bar.h

Only the single-target form is supported: the first token is the target and
every following token is a dependency.
"""
import enum
import os
from pathlib import Path
import jinja2
from lark import Lark, Transformer

GRAMMAR = r"""
WORD: /\S+/
WS: /\s+/
%ignore WS

depfile: (target dependency*)?
target: WORD
dependency: WORD
"""

TEMPLATE = """\
{{ target }}: \\
{% for dep in deps %}
    {{ dep }} \\
{% endfor %}
"""

CONTINUATION_MARKER = "\\"


class ResolveError(Exception):
    def __init__(self, message, hint=None):
        super().__init__(message)
        self.message = message
        self.hint = hint

class EmptyFile(ResolveError):
    pass

class EmptyTarget(ResolveError):
    pass

class TargetNotAbsolute(ResolveError):
    pass

class BaseDirNotAbsolute(ResolveError):
    pass

class PathResolutionFailed(ResolveError):
    def __init__(self, token, cause):
        reason = getattr(cause, "strerror", None) or str(cause)
        super().__init__(f"failed to resolve path ({token}): {reason}")
        self.token = token
        self.cause = cause


class TokenKind(enum.Enum):
    CONTINUATION = "continuation"
    ABSOLUTE = "absolute"
    RELATIVE = "relative"


class DependencyToken:
    def __init__(self, kind, text):
        self.kind = kind
        self.text = text

    def __repr__(self):
        return f"DependencyToken({self.kind.name}, {self.text!r})"

    def __eq__(self, other):
        return isinstance(other, DependencyToken) \
            and (self.kind, self.text) == (other.kind, other.text)


class Depfile:
    def __init__(self, target, dependencies):
        self.target = target
        self.dependencies = dependencies


class DepfileTransformer(Transformer):
    def dependency(self, child):
        text = str(child[0])
        return DependencyToken(classify(text), text)

    target = lambda _, child: str(child[0])
    depfile = list


def classify(text):
    if text == CONTINUATION_MARKER:
        return TokenKind.CONTINUATION
    if os.path.isabs(text):
        return TokenKind.ABSOLUTE
    return TokenKind.RELATIVE


parser = Lark(GRAMMAR, start="depfile", parser="lalr")
template = jinja2.Environment(trim_blocks=True, keep_trailing_newline=True) \
    .from_string(TEMPLATE)

def parse(content):
    """Splits ``content`` into its target and dependency tokens.

    Exactly one trailing colon is stripped from the target; anything else
    about the target (including further colons) is kept as is.
    """
    tokens = DepfileTransformer().transform(parser.parse(content))
    if not tokens:
        raise EmptyFile("file has no content")

    target, *dependencies = tokens
    if target.endswith(":"):
        target = target[:-1]
    if not target:
        raise EmptyTarget("depfile target is empty")
    if not os.path.isabs(target):
        raise TargetNotAbsolute(
            f"depfile target ({target}) is not absolute",
            hint="correct your compiler argument (-MT or -o) to use an absolute path")

    return Depfile(target, dependencies)


def check_base_dir(base_dir):
    if not os.path.isabs(base_dir):
        raise BaseDirNotAbsolute(f"directory must be absolute: {base_dir}")


def resolve_dependency(token, base_dir):
    """Returns the path to emit for ``token``, or None if it is dropped."""
    if token.kind == TokenKind.CONTINUATION:
        return None
    if token.kind == TokenKind.ABSOLUTE:
        # Already absolute paths are trusted and not checked for existence.
        return token.text

    path = os.path.join(base_dir, token.text)
    try:
        # Walk the path as written first, so that "foo.c/" or "foo.c/../foo.c"
        # fails on a regular file instead of being normalized away.
        os.stat(path)
        return str(Path(path).resolve(strict=True))
    except (OSError, RuntimeError) as e:
        raise PathResolutionFailed(token.text, e) from e


def render(target, dependencies):
    return template.render(target=target, deps=dependencies)


def resolve(content, base_dir, trace=None):
    """Rewrites ``content`` so that every dependency is an absolute path.

    Relative dependencies are joined to ``base_dir`` and canonicalized. The
    first failure aborts the whole operation; nothing is returned partially.
    ``trace`` is called with a line of text for each step if given.
    """
    if trace is None:
        trace = lambda message: None

    check_base_dir(base_dir)
    depfile = parse(content)
    trace(f"depfile target: {depfile.target}")

    deps = []
    for token in depfile.dependencies:
        path = resolve_dependency(token, base_dir)
        if path is None:
            continue
        if path != token.text:
            trace(f"resolved: {token.text} -> {path}")
        else:
            trace(f"kept: {path}")
        deps.append(path)

    return render(depfile.target, deps).encode("utf-8")
