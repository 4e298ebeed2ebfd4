"""
robots.txt rule groups.

A `Group` is the set of Allow/Disallow rules and the crawl-delay that apply
to one user agent on one domain. `parse_robots` turns the raw file into the
group matching our user agent.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple
from urllib.parse import urlparse


@dataclass(frozen=True)
class Rule:
    """A single Allow/Disallow directive."""
    path: str
    allow: bool
    pattern: Optional[re.Pattern] = None

    @classmethod
    def from_directive(cls, path: str, allow: bool) -> "Rule":
        if "*" in path or path.endswith("$"):
            return cls(path=path, allow=allow, pattern=compile_wildcard(path))
        return cls(path=path, allow=allow)


@dataclass(frozen=True)
class Group:
    """Rules and crawl-delay (seconds) for one user agent."""
    rules: Tuple[Rule, ...] = ()
    agent: str = "*"
    crawl_delay: float = 0.0

    def find_rule(self, path: str) -> Optional[Rule]:
        """
        Return the rule with the strongest match for `path`.

        Wildcard rules weigh the length of their pattern, literal rules the
        length of the matched prefix. A bare "/" rule weighs 1 and only
        counts while nothing else has matched. On equal weight the earlier
        rule is kept.
        """
        found = None
        weight = 0

        for rule in self.rules:
            if rule.pattern is not None:
                # Weighed by the path as written, not the escaped regex source
                if rule.pattern.match(path) and len(rule.path) > weight:
                    weight = len(rule.path)
                    found = rule
            elif rule.path == "/" and weight == 0:
                weight = 1
                found = rule
            elif path.startswith(rule.path) and len(rule.path) > weight:
                weight = len(rule.path)
                found = rule

        return found

    def test(self, path: str) -> bool:
        rule = self.find_rule(path)
        if rule is not None:
            return rule.allow
        # No applicable rule: crawling is unrestricted
        return True


def compile_wildcard(path: str) -> re.Pattern:
    """Translate a robots.txt path with `*` and a trailing `$` into a regex."""
    anchored = path.endswith("$")
    if anchored:
        path = path[:-1]
    regex = ".*".join(re.escape(part) for part in path.split("*"))
    if anchored:
        regex += "$"
    return re.compile(regex)


def robots_url(url: str) -> str:
    """Location of the robots.txt governing `url`."""
    parsed = urlparse(url)
    return f"{parsed.scheme or 'http'}://{parsed.netloc}/robots.txt"


def _agent_token(user_agent: str) -> str:
    return user_agent.strip().lower()


def parse_robots(text: str, user_agent: str) -> Optional[Group]:
    """
    Parse robots.txt content and return the group for `user_agent`.

    Groups are introduced by one or more consecutive User-agent lines. The
    group whose agent token appears in our user agent wins (longest token
    first); otherwise the `*` group; otherwise None.
    """
    groups: List[Tuple[List[str], List[Rule], float]] = []
    agents: List[str] = []
    rules: List[Rule] = []
    delay = 0.0
    collecting_agents = False

    def flush():
        if agents:
            groups.append((list(agents), list(rules), delay))

    for raw_line in text.splitlines():
        line = raw_line.split("#", 1)[0].strip()
        if not line or ":" not in line:
            continue

        key, value = line.split(":", 1)
        key = key.strip().lower()
        value = value.strip()

        if key == "user-agent":
            if not collecting_agents:
                flush()
                agents, rules, delay = [], [], 0.0
                collecting_agents = True
            agents.append(_agent_token(value))
            continue

        collecting_agents = False
        if not agents:
            # Directives before any User-agent line belong to nobody
            continue

        if key in ("allow", "disallow"):
            if not value:
                # An empty Disallow allows everything; an empty Allow is meaningless
                continue
            rules.append(Rule.from_directive(value, allow=(key == "allow")))
        elif key == "crawl-delay":
            try:
                delay = max(0.0, float(value))
            except ValueError:
                pass

    flush()

    ua = _agent_token(user_agent)
    best = None
    best_len = 0
    wildcard = None

    for group_agents, group_rules, group_delay in groups:
        for agent in group_agents:
            if agent == "*":
                if wildcard is None:
                    wildcard = Group(tuple(group_rules), agent, group_delay)
            elif agent in ua and len(agent) > best_len:
                best = Group(tuple(group_rules), agent, group_delay)
                best_len = len(agent)

    return best or wildcard
