"""
Flow-Sensitive State Tracking.

This module implements the reusable intraprocedural engine shared by the
flow-sensitive detectors. A detector describes *what* matters through a
`FlowPolicy` (which tests act as guards, which expressions dereference a symbol,
which statements satisfy, bind or defer). The engine decides *where* each fact
holds by walking one function body.

The analysis runs in two explicit phases:

1.  `collect_facts` is a pure pass over the body. For every `if`, `while` and
    `assert` it records the `Guard` the test establishes and whether the branch
    taken on the negative outcome leaves the function (an early exit). For every
    `try` with a `finally` clause it records the satisfactions found there, which
    act as deferred releases for the whole protected region.
2.  `FlowTracker` walks the body again in source order, threading an immutable
    `FlowState` through every statement method. Branches are walked separately and
    joined by intersection; branches that exit contribute nothing to a join.

Loops are walked once as a linear block. There is no fixpoint over back edges, so
loop-carried satisfaction is deliberately under-approximated.
"""

from dataclasses import dataclass, field
from typing import ClassVar, Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple, Union

import libcst as cst

from flowlint.core.program import SymbolKey, dotted_name
from flowlint.enums import FlowValue

Block = Union[cst.BaseSuite, cst.Else, cst.Finally]

# Calls that never return control to the caller.
NORETURN_CALLS = frozenset(
  {
    "sys.exit",
    "exit",
    "quit",
    "os._exit",
    "os.abort",
    "pytest.fail",
    "pytest.skip",
    "pytest.exit",
    "self.fail",
  }
)

_EXIT_STATEMENTS = (cst.Return, cst.Raise, cst.Continue, cst.Break)


@dataclass(frozen=True)
class Binding:
  """
  A tracked obligation on a symbol.

  Attributes:
      symbol (SymbolKey): The tracked symbol.
      accessor (Optional[str]): Field through which the release is reached (`resp.raw`).
      release (Optional[str]): Name of the releasing method, if any.
      label (str): Human readable description used in messages.
      node (Optional[cst.CSTNode]): Node that created the binding.
  """

  symbol: SymbolKey
  accessor: Optional[str] = None
  release: Optional[str] = None
  label: str = ""
  node: Optional[cst.CSTNode] = field(default=None, compare=True, repr=False)

  @property
  def target(self) -> str:
    """Spelling of the object the release call is made on."""
    if self.accessor:
      return f"{self.symbol.name}.{self.accessor}"
    return self.symbol.name


@dataclass(frozen=True)
class Satisfaction:
  """
  Evidence that discharges bindings.

  With `method=None` every binding of the symbol is satisfied (guard, rebinding,
  ownership transfer). Otherwise only bindings whose release method and accessor
  path match exactly are.
  """

  symbol: SymbolKey
  accessor: Optional[str] = None
  method: Optional[str] = None

  def matches(self, binding: Binding) -> bool:
    if binding.symbol != self.symbol:
      return False
    if self.method is None:
      return True
    return self.method == binding.release and self.accessor == binding.accessor


@dataclass(frozen=True)
class Guard:
  """Satisfactions that hold when a test evaluates true, and when it evaluates false."""

  when_true: FrozenSet[Satisfaction] = frozenset()
  when_false: FrozenSet[Satisfaction] = frozenset()

  def negate(self) -> "Guard":
    return Guard(when_true=self.when_false, when_false=self.when_true)

  def __bool__(self) -> bool:
    return bool(self.when_true or self.when_false)


NO_GUARD = Guard()


@dataclass(frozen=True)
class ConditionFact:
  """
  Phase one result for a single conditional.

  Attributes:
      guard (Guard): What the test establishes on each outcome.
      body_exits (bool): The true branch ends in an unconditional exit.
      orelse_exits (bool): The false branch exists and ends in an unconditional exit.
  """

  guard: Guard
  body_exits: bool = False
  orelse_exits: bool = False

  @property
  def promotes(self) -> FrozenSet[Satisfaction]:
    """Satisfactions that hold for every statement after the conditional."""
    if self.body_exits and not self.orelse_exits:
      return self.guard.when_false
    if self.orelse_exits and not self.body_exits:
      return self.guard.when_true
    return frozenset()


@dataclass
class FlowFacts:
  """Dominance facts for one function body, keyed by node identity."""

  conditions: Dict[cst.CSTNode, ConditionFact] = field(default_factory=dict)
  finally_satisfactions: Dict[cst.CSTNode, FrozenSet[Satisfaction]] = field(default_factory=dict)


@dataclass(frozen=True)
class FlowState:
  """
  Immutable per-path state.

  Attributes:
      bindings (Tuple[Binding, ...]): Live bindings in creation order.
      satisfied (FrozenSet[Binding]): Bindings already discharged on this path.
      deferred (FrozenSet[Satisfaction]): Releases guaranteed to run at exit.
      reachable (bool): False once the path has left the function or the loop.
  """

  bindings: Tuple[Binding, ...] = ()
  satisfied: FrozenSet[Binding] = frozenset()
  deferred: FrozenSet[Satisfaction] = frozenset()
  reachable: bool = True

  @classmethod
  def initial(cls, seeds: Iterable[Binding]) -> "FlowState":
    return cls(bindings=tuple(dict.fromkeys(seeds)))

  @classmethod
  def dead(cls) -> "FlowState":
    return cls(reachable=False)

  def value(self, binding: Binding) -> FlowValue:
    return FlowValue.SATISFIED if binding in self.satisfied else FlowValue.UNKNOWN

  def unsatisfied(self, symbol: SymbolKey) -> List[Binding]:
    return [b for b in self.bindings if b.symbol == symbol and self.value(b) == FlowValue.UNKNOWN]

  def bind(self, bindings: Iterable[Binding]) -> "FlowState":
    new = [b for b in bindings if b not in self.bindings]
    if not new:
      return self
    return FlowState(self.bindings + tuple(new), self.satisfied, self.deferred, self.reachable)

  def satisfy(self, satisfactions: Iterable[Satisfaction]) -> "FlowState":
    sats = tuple(satisfactions)
    if not sats or not self.reachable:
      return self
    hits = {b for b in self.bindings if b not in self.satisfied and any(s.matches(b) for s in sats)}
    if not hits:
      return self
    return FlowState(self.bindings, self.satisfied | hits, self.deferred, self.reachable)

  def defer(self, satisfactions: Iterable[Satisfaction]) -> "FlowState":
    sats = frozenset(satisfactions)
    if not sats or sats <= self.deferred:
      return self
    return FlowState(self.bindings, self.satisfied, self.deferred | sats, self.reachable)

  def undefer(self, satisfactions: Iterable[Satisfaction]) -> "FlowState":
    sats = frozenset(satisfactions) & self.deferred
    if not sats:
      return self
    return FlowState(self.bindings, self.satisfied, self.deferred - sats, self.reachable)

  def is_covered(self, binding: Binding) -> bool:
    """True if the binding is satisfied now or will be by a deferred release."""
    return binding in self.satisfied or any(s.matches(binding) for s in self.deferred)

  @staticmethod
  def join(states: Sequence["FlowState"]) -> "FlowState":
    """
    Merges the states of converging paths.

    A binding is satisfied after the join only if every reachable incoming state
    that holds it has it satisfied. Unreachable states are ignored; if none is
    reachable the result is unreachable.
    """
    live = [s for s in states if s.reachable]
    if not live:
      return FlowState.dead()
    if len(live) == 1:
      return live[0]

    ordered: Dict[Binding, None] = {}
    for state in live:
      ordered.update(dict.fromkeys(state.bindings))

    satisfied = set()
    for binding in ordered:
      holders = [s for s in live if binding in s.bindings]
      if all(binding in s.satisfied for s in holders):
        satisfied.add(binding)

    deferred = live[0].deferred
    for state in live[1:]:
      deferred = deferred & state.deferred

    return FlowState(tuple(ordered), frozenset(satisfied), deferred, True)


@dataclass(frozen=True)
class Violation:
  """A use of a symbol while one of its bindings was still unsatisfied."""

  binding: Binding
  node: cst.CSTNode


@dataclass(frozen=True)
class Leak:
  """A binding still unsatisfied when the function exits."""

  binding: Binding
  exit_node: Optional[cst.CSTNode] = None


@dataclass(frozen=True)
class FlowReport:
  """Outcome of tracking one function body."""

  violations: Tuple[Violation, ...] = ()
  leaks: Tuple[Leak, ...] = ()


class FlowPolicy:
  """
  Detector-specific predicates consumed by the engine.

  Every hook has a neutral default so a policy only overrides what it needs.

  Attributes:
      tracks_exits (bool): Whether bindings left unsatisfied at an exit are leaks.
  """

  tracks_exits: ClassVar[bool] = False

  def guard(self, test: cst.BaseExpression) -> Optional[Guard]:
    """Guard established by an atomic test (composition with and/or/not is done by the engine)."""
    return None

  def use_of(self, node: cst.CSTNode) -> Optional[SymbolKey]:
    """Symbol dereferenced by `node`, if the node is a use site."""
    return None

  def satisfies(self, node: cst.CSTNode) -> Iterable[Satisfaction]:
    """Satisfactions established by a small statement, a `for` header or a `with` header."""
    return ()

  def binds(self, node: cst.BaseSmallStatement) -> Iterable[Binding]:
    """Bindings created by a small statement."""
    return ()

  def defers(self, node: cst.BaseSmallStatement) -> Iterable[Satisfaction]:
    """Releases a small statement registers to run at function exit."""
    return ()


def guard_of(test: cst.BaseExpression, policy: FlowPolicy) -> Guard:
  """
  Composes the guard of a test expression.

  `not`, `and` and `or` are handled here; atomic tests are delegated to the policy.

  Args:
      test: The test expression.
      policy: The active policy.

  Returns:
      Guard: Possibly empty.
  """
  if isinstance(test, cst.UnaryOperation) and isinstance(test.operator, cst.Not):
    return guard_of(test.expression, policy).negate()

  if isinstance(test, cst.BooleanOperation):
    left = guard_of(test.left, policy)
    right = guard_of(test.right, policy)
    if isinstance(test.operator, cst.And):
      return Guard(
        when_true=left.when_true | right.when_true,
        when_false=left.when_false & right.when_false,
      )
    return Guard(
      when_true=left.when_true & right.when_true,
      when_false=left.when_false | right.when_false,
    )

  return policy.guard(test) or NO_GUARD


def _statements(block: Optional[Block]) -> Sequence[cst.CSTNode]:
  if block is None:
    return ()
  if isinstance(block, (cst.Else, cst.Finally)):
    block = block.body
  return block.body


def _is_noreturn_call(small: cst.BaseSmallStatement) -> bool:
  if isinstance(small, cst.Expr) and isinstance(small.value, cst.Call):
    return dotted_name(small.value.func) in NORETURN_CALLS
  return False


def block_exits(block: Optional[Block]) -> bool:
  """
  Checks whether a block ends in an unconditional exit.

  Exits are `return`, `raise`, `continue`, `break`, calls that never return, and
  `if` statements whose every branch exits.

  Args:
      block: An indented block, a simple statement suite, or an else/finally clause.

  Returns:
      bool: True if control cannot fall off the end of the block.
  """
  stmts = _statements(block)
  if not stmts:
    return False
  last = stmts[-1]
  if isinstance(last, cst.SimpleStatementLine):
    small = last.body[-1] if last.body else None
    return isinstance(small, _EXIT_STATEMENTS) or (small is not None and _is_noreturn_call(small))
  if isinstance(last, cst.BaseSmallStatement):
    return isinstance(last, _EXIT_STATEMENTS) or _is_noreturn_call(last)
  if isinstance(last, cst.If):
    return _if_exits(last)
  if isinstance(last, cst.With):
    return block_exits(last.body)
  return False


def _if_exits(node: cst.If) -> bool:
  if node.orelse is None:
    return False
  if isinstance(node.orelse, cst.If):
    return block_exits(node.body) and _if_exits(node.orelse)
  return block_exits(node.body) and block_exits(node.orelse)


class _FactCollector:
  """Phase one: pure collection of guard and finally facts."""

  def __init__(self, policy: FlowPolicy):
    self._policy = policy
    self.facts = FlowFacts()

  def block(self, block: Optional[Block]) -> None:
    for stmt in _statements(block):
      self.stmt(stmt)

  def stmt(self, stmt: cst.CSTNode) -> None:
    if isinstance(stmt, (cst.SimpleStatementLine, cst.BaseSmallStatement)):
      smalls = stmt.body if isinstance(stmt, cst.SimpleStatementLine) else [stmt]
      for small in smalls:
        if isinstance(small, cst.Assert):
          self.facts.conditions[small] = ConditionFact(guard=guard_of(small.test, self._policy))
      return

    if isinstance(stmt, (cst.FunctionDef, cst.ClassDef)):
      return

    if isinstance(stmt, cst.If):
      orelse_exits = False
      if isinstance(stmt.orelse, cst.If):
        orelse_exits = _if_exits(stmt.orelse)
      elif stmt.orelse is not None:
        orelse_exits = block_exits(stmt.orelse)
      self.facts.conditions[stmt] = ConditionFact(
        guard=guard_of(stmt.test, self._policy),
        body_exits=block_exits(stmt.body),
        orelse_exits=orelse_exits,
      )
      self.block(stmt.body)
      if isinstance(stmt.orelse, cst.If):
        self.stmt(stmt.orelse)
      else:
        self.block(stmt.orelse)
      return

    if isinstance(stmt, cst.While):
      self.facts.conditions[stmt] = ConditionFact(guard=guard_of(stmt.test, self._policy))
      self.block(stmt.body)
      self.block(stmt.orelse)
      return

    if isinstance(stmt, (cst.Try, cst.TryStar)):
      if stmt.finalbody is not None:
        self.facts.finally_satisfactions[stmt] = frozenset(self._satisfactions_in(stmt.finalbody))
      self.block(stmt.body)
      for handler in stmt.handlers:
        self.block(handler.body)
      self.block(stmt.orelse)
      self.block(stmt.finalbody)
      return

    if isinstance(stmt, cst.Match):
      for case in stmt.cases:
        self.block(case.body)
      return

    if isinstance(stmt, (cst.For, cst.With)):
      self.block(stmt.body)
      if isinstance(stmt, cst.For):
        self.block(stmt.orelse)

  def _satisfactions_in(self, block: Optional[Block]) -> List[Satisfaction]:
    found: List[Satisfaction] = []
    for stmt in _statements(block):
      found.extend(self._satisfactions_of(stmt))
    return found

  def _satisfactions_of(self, stmt: cst.CSTNode) -> List[Satisfaction]:
    if isinstance(stmt, cst.SimpleStatementLine):
      return [sat for small in stmt.body for sat in self._policy.satisfies(small)]
    if isinstance(stmt, cst.BaseSmallStatement):
      return list(self._policy.satisfies(stmt))
    if isinstance(stmt, cst.If):
      found = self._satisfactions_in(stmt.body)
      if isinstance(stmt.orelse, cst.If):
        found.extend(self._satisfactions_of(stmt.orelse))
      else:
        found.extend(self._satisfactions_in(stmt.orelse))
      return found
    if isinstance(stmt, (cst.With, cst.For, cst.While)):
      return self._satisfactions_in(stmt.body)
    if isinstance(stmt, (cst.Try, cst.TryStar)):
      return self._satisfactions_in(stmt.body) + self._satisfactions_in(stmt.finalbody)
    return []


def collect_facts(body: Block, policy: FlowPolicy) -> FlowFacts:
  """
  Phase one. Collects dominance facts for a function body.

  Nested function and class bodies are not entered.

  Args:
      body: The function body.
      policy: The detector policy supplying atomic guards and satisfactions.

  Returns:
      FlowFacts: Guards per conditional and deferred releases per `try`.
  """
  collector = _FactCollector(policy)
  collector.block(body)
  return collector.facts


@dataclass
class _LoopContext:
  breaks: List[FlowState] = field(default_factory=list)
  continues: List[FlowState] = field(default_factory=list)


class FlowTracker:
  """
  Phase two. Walks one function body in source order with an explicit state.

  Each statement method takes the incoming `FlowState` and returns the outgoing
  one. Violations and leaks are reported at most once per binding.
  """

  def __init__(self, policy: FlowPolicy, facts: FlowFacts, seeds: Iterable[Binding] = ()):
    """
    Args:
        policy: The detector policy.
        facts: Output of `collect_facts` for the same body.
        seeds: Bindings live at function entry (e.g. parameters).
    """
    self._policy = policy
    self._facts = facts
    self._seeds = tuple(seeds)
    self._loops: List[_LoopContext] = []
    self._violations: List[Violation] = []
    self._leaks: List[Leak] = []
    self._reported: set = set()
    self._leaked: set = set()

  def run(self, body: Block) -> FlowReport:
    """
    Tracks the body and returns the findings.

    Args:
        body: The function body (`FunctionDef.body`).

    Returns:
        FlowReport: Violations in discovery order, leaks in discovery order.
    """
    state = self.block(body, FlowState.initial(self._seeds))
    if state.reachable:
      self._check_exit(state, None)
    return FlowReport(violations=tuple(self._violations), leaks=tuple(self._leaks))

  # --- Statements ---

  def block(self, block: Optional[Block], state: FlowState) -> FlowState:
    for stmt in _statements(block):
      if not state.reachable:
        break
      state = self.stmt(stmt, state)
    return state

  def stmt(self, stmt: cst.CSTNode, state: FlowState) -> FlowState:
    if isinstance(stmt, cst.SimpleStatementLine):
      for small in stmt.body:
        if not state.reachable:
          break
        state = self.small(small, state)
      return state
    if isinstance(stmt, cst.BaseSmallStatement):
      return self.small(stmt, state)
    if isinstance(stmt, cst.If):
      return self._if(stmt, state)
    if isinstance(stmt, cst.While):
      return self._while(stmt, state)
    if isinstance(stmt, cst.For):
      return self._for(stmt, state)
    if isinstance(stmt, (cst.Try, cst.TryStar)):
      return self._try(stmt, state)
    if isinstance(stmt, cst.With):
      return self._with(stmt, state)
    if isinstance(stmt, cst.Match):
      return self._match(stmt, state)
    if isinstance(stmt, cst.FunctionDef):
      for decorator in stmt.decorators:
        state = self.expr(decorator.decorator, state)
      return state
    if isinstance(stmt, cst.ClassDef):
      for decorator in stmt.decorators:
        state = self.expr(decorator.decorator, state)
      for arg in stmt.bases:
        state = self.expr(arg.value, state)
      return state
    return state

  def small(self, small: cst.BaseSmallStatement, state: FlowState) -> FlowState:
    if isinstance(small, cst.Return):
      if small.value is not None:
        state = self.expr(small.value, state)
      state = state.satisfy(self._policy.satisfies(small))
      self._check_exit(state, small)
      return FlowState.dead()

    if isinstance(small, cst.Raise):
      if small.exc is not None:
        state = self.expr(small.exc, state)
      return FlowState.dead()

    if isinstance(small, (cst.Break, cst.Continue)):
      if self._loops:
        ctx = self._loops[-1]
        (ctx.breaks if isinstance(small, cst.Break) else ctx.continues).append(state)
      return FlowState.dead()

    if isinstance(small, cst.Assert):
      state = self.expr(small.test, state)
      fact = self._facts.conditions.get(small)
      guard = fact.guard if fact is not None else guard_of(small.test, self._policy)
      return state.satisfy(guard.when_true)

    state = self.expr(small, state)
    state = state.satisfy(self._policy.satisfies(small))
    state = state.bind(self._policy.binds(small))
    return state.defer(self._policy.defers(small))

  def _if(self, node: cst.If, state: FlowState) -> FlowState:
    state = self.expr(node.test, state)
    fact = self._facts.conditions.get(node) or ConditionFact(guard=guard_of(node.test, self._policy))

    then_state = self.block(node.body, state.satisfy(fact.guard.when_true))
    else_entry = state.satisfy(fact.guard.when_false)
    if isinstance(node.orelse, cst.If):
      else_state = self._if(node.orelse, else_entry)
    elif node.orelse is not None:
      else_state = self.block(node.orelse, else_entry)
    else:
      else_state = else_entry

    joined = FlowState.join([then_state, else_state])
    return joined.satisfy(fact.promotes)

  def _loop(
    self,
    body: Block,
    orelse: Optional[cst.Else],
    skip_state: FlowState,
    body_entry: FlowState,
    exit_guard: FrozenSet[Satisfaction] = frozenset(),
    infinite: bool = False,
  ) -> FlowState:
    ctx = _LoopContext()
    self._loops.append(ctx)
    try:
      body_end = self.block(body, body_entry)
    finally:
      self._loops.pop()

    if infinite:
      # Only `break` leaves a `while True` loop.
      return FlowState.join(ctx.breaks)

    normal = FlowState.join([skip_state, body_end, *ctx.continues]).satisfy(exit_guard)
    if orelse is not None and normal.reachable:
      normal = self.block(orelse, normal)
    return FlowState.join([normal, *ctx.breaks])

  def _while(self, node: cst.While, state: FlowState) -> FlowState:
    state = self.expr(node.test, state)
    fact = self._facts.conditions.get(node) or ConditionFact(guard=guard_of(node.test, self._policy))
    return self._loop(
      node.body,
      node.orelse,
      state,
      state.satisfy(fact.guard.when_true),
      exit_guard=fact.guard.when_false,
      infinite=_is_always_true(node.test),
    )

  def _for(self, node: cst.For, state: FlowState) -> FlowState:
    state = self.expr(node.iter, state)
    body_entry = state.satisfy(self._policy.satisfies(node))
    return self._loop(node.body, node.orelse, state, body_entry)

  def _try(self, node: Union[cst.Try, cst.TryStar], state: FlowState) -> FlowState:
    finally_sats = self._facts.finally_satisfactions.get(node, frozenset())
    entry = state.defer(finally_sats)
    # The finally clause only covers bindings that are live inside the try.
    scoped = finally_sats - state.deferred

    body_state = self.block(node.body, entry)
    if node.orelse is not None and body_state.reachable:
      body_state = self.block(node.orelse, body_state)

    outcomes = [body_state]
    for handler in node.handlers:
      handler_state = entry
      if handler.type is not None:
        handler_state = self.expr(handler.type, handler_state)
      outcomes.append(self.block(handler.body, handler_state))
    joined = FlowState.join(outcomes)

    if node.finalbody is None:
      return joined.undefer(scoped)
    if joined.reachable:
      return self.block(node.finalbody, joined).undefer(scoped)
    self.block(node.finalbody, entry)
    return FlowState.dead()

  def _with(self, node: cst.With, state: FlowState) -> FlowState:
    for item in node.items:
      state = self.expr(item.item, state)
    state = state.satisfy(self._policy.satisfies(node))
    return self.block(node.body, state)

  def _match(self, node: cst.Match, state: FlowState) -> FlowState:
    state = self.expr(node.subject, state)
    outcomes = []
    exhaustive = False
    for case in node.cases:
      case_state = state
      if case.guard is not None:
        case_state = self.expr(case.guard, case_state)
        case_state = case_state.satisfy(guard_of(case.guard, self._policy).when_true)
      outcomes.append(self.block(case.body, case_state))
      if case.guard is None and _is_irrefutable(case.pattern):
        exhaustive = True
    if not exhaustive:
      outcomes.append(state)
    return FlowState.join(outcomes)

  # --- Expressions ---

  def expr(self, node: cst.CSTNode, state: FlowState) -> FlowState:
    """
    Scans an expression (or small statement) for use sites in source order.

    Conditional expressions and short-circuit operators apply their guards to the
    operands they protect. Lambda bodies are not entered.
    """
    if not state.reachable:
      return state

    if isinstance(node, cst.Lambda):
      return state

    if isinstance(node, cst.IfExp):
      state = self.expr(node.test, state)
      guard = guard_of(node.test, self._policy)
      body_state = self.expr(node.body, state.satisfy(guard.when_true))
      else_state = self.expr(node.orelse, state.satisfy(guard.when_false))
      return FlowState.join([body_state, else_state])

    if isinstance(node, cst.BooleanOperation):
      left_state = self.expr(node.left, state)
      guard = guard_of(node.left, self._policy)
      protected = guard.when_true if isinstance(node.operator, cst.And) else guard.when_false
      right_state = self.expr(node.right, left_state.satisfy(protected))
      return FlowState.join([left_state, right_state])

    symbol = self._policy.use_of(node)
    if symbol is not None:
      state = self._check_use(symbol, node, state)

    for child in node.children:
      state = self.expr(child, state)
    return state

  def _check_use(self, symbol: SymbolKey, node: cst.CSTNode, state: FlowState) -> FlowState:
    pending = state.unsatisfied(symbol)
    if not pending:
      return state
    for binding in pending:
      if binding not in self._reported:
        self._reported.add(binding)
        self._violations.append(Violation(binding=binding, node=node))
    return state.satisfy([Satisfaction(symbol)])

  def _check_exit(self, state: FlowState, node: Optional[cst.CSTNode]) -> None:
    if not self._policy.tracks_exits:
      return
    for binding in state.bindings:
      if binding in self._leaked or state.is_covered(binding):
        continue
      self._leaked.add(binding)
      self._leaks.append(Leak(binding=binding, exit_node=node))


def _is_always_true(test: cst.BaseExpression) -> bool:
  if isinstance(test, cst.Name):
    return test.value == "True"
  if isinstance(test, cst.Integer):
    return test.evaluated_value != 0
  return False


def _is_irrefutable(pattern: cst.MatchPattern) -> bool:
  if isinstance(pattern, cst.MatchAs):
    return pattern.pattern is None
  if isinstance(pattern, cst.MatchOr):
    return any(_is_irrefutable(element.pattern) for element in pattern.patterns)
  return False


def track(
  body: Block,
  policy: FlowPolicy,
  seeds: Iterable[Binding] = (),
) -> FlowReport:
  """
  Runs both phases over a function body.

  Args:
      body: The function body.
      policy: The detector policy.
      seeds: Bindings live at entry.

  Returns:
      FlowReport: The findings.
  """
  facts = collect_facts(body, policy)
  return FlowTracker(policy, facts, seeds).run(body)
