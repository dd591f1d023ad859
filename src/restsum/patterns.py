"""Route declaration patterns for the supported web frameworks.

Each framework profile lists the file extensions it applies to and an
ordered tuple of match rules. A rule is a regular expression evaluated
against a single source line plus the capture-group numbers that hold the
HTTP method, the route path and (optionally) the handler name.

Group number ``NO_GROUP`` means the value is not present in the match:
a rule without a method group yields GET, unless the rule carries an
``expand_marker`` and that keyword appears in the matched line, in which
case the declaration expands to several routes (``resources :users``) and
the scanner emits a single RESOURCE endpoint for it.

The table is built once at import time and never mutated.
"""

import re
from dataclasses import dataclass
from typing import Optional, Pattern, Tuple

NO_GROUP = 0

# Quote classes: every ecosystem gets single and double quotes, JavaScript
# and Go also get back-ticks (template literals / raw strings).
_Q = r"""['"]"""
_NQ = r"""[^'"]+"""
_QB = r"""['"`]"""
_NQB = r"""[^'"`]+"""


@dataclass(frozen=True)
class MatchRule:
    """A single line-level route pattern."""
    regex: Pattern[str]
    method_group: int
    path_group: int
    handler_group: int = NO_GROUP
    expand_marker: Optional[str] = None

    def expands(self, line: str) -> bool:
        """True if a match on ``line`` is a multi-route declaration."""
        return (
            self.method_group == NO_GROUP
            and self.expand_marker is not None
            and self.expand_marker in line
        )


@dataclass(frozen=True)
class FrameworkPattern:
    """Detection profile for one web framework."""
    name: str
    extensions: Tuple[str, ...]
    rules: Tuple[MatchRule, ...]

    def applies_to(self, extension: str) -> bool:
        return extension in self.extensions


def _rule(
    pattern: str,
    method_group: int,
    path_group: int,
    handler_group: int = NO_GROUP,
    expand_marker: Optional[str] = None,
) -> MatchRule:
    return MatchRule(
        regex=re.compile(pattern),
        method_group=method_group,
        path_group=path_group,
        handler_group=handler_group,
        expand_marker=expand_marker,
    )


FRAMEWORK_PATTERNS: Tuple[FrameworkPattern, ...] = (
    FrameworkPattern(
        name="Express",
        extensions=(".js", ".ts", ".mjs", ".cjs"),
        rules=(
            # app.get('/path', handler) / router.post(`/path`, ...)
            _rule(
                rf"\b(?:app|router)\.(get|post|put|delete|patch|options|head)\s*\(\s*{_QB}({_NQB}){_QB}"
                r"(?:\s*,\s*([\w.]+)\s*\))?",
                1, 2, 3,
            ),
            # app.route('/path').get(handler)
            _rule(
                rf"\bapp\.route\s*\(\s*{_QB}({_NQB}){_QB}\s*\)\s*\.(get|post|put|delete|patch)\b",
                2, 1,
            ),
        ),
    ),
    FrameworkPattern(
        name="Flask",
        extensions=(".py",),
        rules=(
            # @app.route('/path') / @bp.route('/path', methods=['POST'])
            _rule(
                rf"@\w+\.route\s*\(\s*{_Q}({_NQ}){_Q}"
                rf"(?:\s*,\s*methods\s*=\s*[\[(]\s*{_Q}(\w+){_Q})?",
                2, 1,
            ),
        ),
    ),
    FrameworkPattern(
        name="FastAPI",
        extensions=(".py",),
        rules=(
            # @app.get("/path") / @router.post("/path", response_model=...)
            _rule(
                rf"@(?:app|router)\.(get|post|put|delete|patch|options|head)\s*\(\s*{_Q}({_NQ}){_Q}",
                1, 2,
            ),
        ),
    ),
    FrameworkPattern(
        name="Spring",
        extensions=(".java",),
        rules=(
            # @GetMapping("/path") / @PostMapping(value = "/path")
            _rule(
                rf"@(Get|Post|Put|Delete|Patch)Mapping\s*\(\s*(?:(?:value|path)\s*=\s*)?{_Q}({_NQ}){_Q}",
                1, 2,
            ),
            # @RequestMapping(value = "/path", method = RequestMethod.GET)
            _rule(
                rf"@RequestMapping\s*\([^)]*?(?:value|path)\s*=\s*{_Q}({_NQ}){_Q}"
                r"[^)]*method\s*=\s*RequestMethod\.(\w+)",
                2, 1,
            ),
        ),
    ),
    FrameworkPattern(
        name="Gin",
        extensions=(".go",),
        rules=(
            # router.GET("/path", handler) / r.POST(`/path`, h.Create)
            _rule(
                rf"\b(?:router|r)\.(GET|POST|PUT|DELETE|PATCH|OPTIONS|HEAD)\s*\(\s*{_QB}({_NQB}){_QB}"
                r"(?:\s*,\s*([\w.]+)\s*\))?",
                1, 2, 3,
            ),
        ),
    ),
    FrameworkPattern(
        name="Echo",
        extensions=(".go",),
        rules=(
            # e.GET("/path", handler)
            _rule(
                rf"\be\.(GET|POST|PUT|DELETE|PATCH|OPTIONS|HEAD)\s*\(\s*{_QB}({_NQB}){_QB}"
                r"(?:\s*,\s*([\w.]+)\s*\))?",
                1, 2, 3,
            ),
        ),
    ),
    FrameworkPattern(
        name="Rails",
        extensions=(".rb",),
        rules=(
            # get '/path', to: 'controller#action'
            _rule(
                rf"^\s*(get|post|put|patch|delete)\s+{_Q}({_NQ}){_Q}"
                rf"(?:\s*,\s*to:\s*{_Q}([\w/#]+){_Q})?",
                1, 2, 3,
            ),
            # resources :users
            _rule(r"^\s*resources\s+:(\w+)", NO_GROUP, 1, expand_marker="resources"),
        ),
    ),
    FrameworkPattern(
        name="ASP.NET",
        extensions=(".cs",),
        rules=(
            # [HttpGet("path")]
            _rule(
                rf"\[Http(Get|Post|Put|Delete|Patch)\s*\(\s*{_Q}({_NQ}){_Q}\s*\)",
                1, 2,
            ),
            # [Route("api/[controller]")]
            _rule(rf"\[Route\s*\(\s*{_Q}({_NQ}){_Q}\s*\)", NO_GROUP, 1),
        ),
    ),
    FrameworkPattern(
        name="Laravel",
        extensions=(".php",),
        rules=(
            # Route::get('/path', [UserController::class, 'index'])
            _rule(
                rf"\bRoute::(get|post|put|patch|delete|options|any)\s*\(\s*{_Q}({_NQ}){_Q}",
                1, 2,
            ),
            # Route::resource('photos', PhotoController::class)
            _rule(
                rf"\bRoute::resource\s*\(\s*{_Q}([\w.\-]+){_Q}",
                NO_GROUP, 1, expand_marker="resource",
            ),
        ),
    ),
)


def patterns_for_extension(
    extension: str,
    patterns: Tuple[FrameworkPattern, ...] = FRAMEWORK_PATTERNS,
) -> Tuple[FrameworkPattern, ...]:
    """Return the profiles that apply to a file extension (exact match)."""
    return tuple(p for p in patterns if p.applies_to(extension))
