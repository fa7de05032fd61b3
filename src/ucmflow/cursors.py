""" Guard and Speculative cursors walking a use case map

A Guard marks a confirmed position in the narrative. A Speculative cursor
explores a hypothetical future on behalf of its parent, so the events it
reaches become legal too. When a Speculative cursor's event is called, the
path it took is handed up the tree to the Guard at its root, which then walks
that path for real.

Cursors live in an arena keyed by integer id. Parent and child relations are
ids looked up in the arena. Destroying a cursor destroys its whole subtree.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Set, Tuple

from ucmflow import config, util
from ucmflow.events import EventRegistry
from ucmflow.graph import ConnectionRef, Node, NodeKind, NodeRef, UseCaseMap

VisitedState = Tuple[ConnectionRef, Tuple[NodeRef, ...]]

class Cursor:
    def __init__(
            self,
            cursor_id:int,
            node_ref:NodeRef,
            stub_stack:Optional[List[NodeRef]]=None,
            parent_id:Optional[int]=None,
            last_connection_ref:Optional[ConnectionRef]=None,
    ) -> None:
        self.id = cursor_id
        self.node_ref = node_ref
        self.last_connection_ref = last_connection_ref
        self.stub_stack:List[NodeRef] = list(stub_stack) if stub_stack else []
        self.parent_id = parent_id
        self.children:List[int] = []
        # connections crossed since spawning, only kept for Speculative cursors
        self.path:List[ConnectionRef] = []
        # (connection, stub stack) states seen, inherited from ancestors
        self.visited:Set[VisitedState] = set()
        self.delete_me = False

    @property
    def is_speculative(self) -> bool:
        return self.parent_id is not None

    def __repr__(self) -> str:
        kind = "Speculative" if self.is_speculative else "Guard"
        return f'{kind}({self.id} at {self.node_ref}, parent={self.parent_id}, children={self.children})'

class Traversal:
    """ Owns every cursor and moves them through a use case map """

    def __init__(self, ucm:UseCaseMap, events:EventRegistry) -> None:
        self.logger = logging.getLogger(util.fullname(self))
        self.ucm = ucm
        self.events = events
        self.cursors:Dict[int, Cursor] = {}
        # guards in creation order, a subset of cursors
        self.guards:Dict[int, Cursor] = {}
        self._next_id = 0
        self.max_hops = config.Settings.narrative.max_traversal_hops

    def reset(self) -> None:
        for guard_id in list(self.guards):
            self.destroy(guard_id)
        self.cursors = {}
        self.guards = {}
        self._next_id = 0
        self.max_hops = config.Settings.narrative.max_traversal_hops

    def _allocate_id(self) -> int:
        cursor_id = self._next_id
        self._next_id += 1
        return cursor_id

    def create_guard(self, node_ref:NodeRef, stub_stack:Optional[List[NodeRef]]=None, last_connection_ref:Optional[ConnectionRef]=None) -> Cursor:
        guard = Cursor(self._allocate_id(), node_ref, stub_stack, last_connection_ref=last_connection_ref)
        self.cursors[guard.id] = guard
        self.guards[guard.id] = guard
        return guard

    def spawn_speculative(self, parent:Cursor, connection_ref:ConnectionRef) -> Optional[Cursor]:
        """ clones parent's position into a new child and pushes it across
        connection_ref

        returns None, leaving no child behind, if the crossing would loop """
        child = Cursor(
            self._allocate_id(), parent.node_ref, parent.stub_stack,
            parent_id=parent.id, last_connection_ref=parent.last_connection_ref,
        )
        if parent.is_speculative:
            child.visited = set(parent.visited)
        self.cursors[child.id] = child
        parent.children.append(child.id)
        if not self.cross(child, connection_ref):
            self.destroy(child.id)
            return None
        return child

    def root(self, cursor:Cursor) -> Cursor:
        while cursor.parent_id is not None:
            cursor = self.cursors[cursor.parent_id]
        return cursor

    def cross(self, cursor:Cursor, connection_ref:ConnectionRef) -> bool:
        """ moves cursor to the target of connection_ref

        returns False if the connection does not resolve or if a Speculative
        cursor would repeat a state it has already been in, in which case the
        cursor stays where it is. """

        connection = self.ucm.connection(connection_ref)
        if connection is None:
            self.logger.warning(f'{cursor} cannot cross unknown connection {connection_ref}')
            return False

        if cursor.is_speculative:
            state = (connection_ref, tuple(cursor.stub_stack))
            if state in cursor.visited:
                self.logger.debug(f'{cursor} parked in a loop at {connection_ref}')
                return False
            cursor.visited.add(state)
            cursor.path.append(connection_ref)

        cursor.last_connection_ref = connection_ref
        cursor.node_ref = connection.target
        return True

    def destroy(self, cursor_id:int) -> None:
        """ destroys a cursor and all its descendants

        each destroyed cursor leaves the event or AndJoin it was attending """

        cursor = self.cursors.get(cursor_id)
        if cursor is None:
            return

        subtree = [cursor]
        i = 0
        while i < len(subtree):
            subtree.extend(self.cursors[c] for c in subtree[i].children if c in self.cursors)
            i += 1

        for doomed in subtree:
            self._leave(doomed)
            del self.cursors[doomed.id]
            self.guards.pop(doomed.id, None)
            doomed.children = []

        if cursor.parent_id is not None:
            parent = self.cursors.get(cursor.parent_id)
            if parent is not None and cursor.id in parent.children:
                parent.children.remove(cursor.id)

    def destroy_children(self, cursor:Cursor) -> None:
        for child_id in list(cursor.children):
            self.destroy(child_id)

    def _leave(self, cursor:Cursor) -> None:
        node = self.ucm.node(cursor.node_ref)
        if node is None:
            return
        if node.kind == NodeKind.EVENT:
            event = self.events.get(node.event_id)
            if event is not None:
                self.events.unload_maybe(event, cursor.id)
        elif node.kind == NodeKind.AND_JOIN:
            state = self.ucm.join_state(node.ref)
            if state is not None:
                state.remove(cursor.id)

    def trot(self, guard:Cursor) -> None:
        """ discards a cursor's speculation and traverses it afresh """
        self.destroy_children(guard)
        self.traverse(guard)

    def traverse(self, cursor:Cursor) -> None:
        """ walks cursor, and every cursor it spawns, until each one halts

        halting means waiting at an event, waiting at an AndJoin or at a node
        with nothing crossable, parking in a loop, or being flagged for
        deletion. """

        work = [cursor.id]
        while work:
            current = self.cursors.get(work.pop())
            if current is not None:
                self._walk(current, work)

    def _walk(self, cursor:Cursor, work:List[int]) -> None:
        hops = 0
        while True:
            hops += 1
            if hops > self.max_hops:
                self.logger.error(f'{cursor} exceeded {self.max_hops} hops, parking it')
                return

            node = self.ucm.node(cursor.node_ref)
            if node is None:
                self.logger.warning(f'{cursor} is at unknown node {cursor.node_ref}')
                cursor.delete_me = True
                return

            if node.kind == NodeKind.STUB:
                cursor.stub_stack.append(cursor.node_ref)
                start_point = self.ucm.stub_start_point(node, cursor.last_connection_ref)
                if start_point is None:
                    self.logger.warning(f'{cursor} found no start point entering stub {node.ref}')
                    cursor.delete_me = True
                    return
                cursor.node_ref = start_point

            elif node.kind == NodeKind.END:
                if not cursor.stub_stack:
                    cursor.delete_me = True
                    return
                exit_ref = self.ucm.stub_exit_connection_ref(node, cursor.stub_stack.pop())
                if exit_ref is None:
                    self.logger.warning(f'{cursor} found no binding out of {node.ref}')
                    cursor.delete_me = True
                    return
                if not self.cross(cursor, exit_ref):
                    return

            elif node.kind == NodeKind.EVENT:
                event = self.events.get(node.event_id)
                if event is None:
                    self.logger.warning(f'{node.ref} refers to unknown event {node.event_id}')
                else:
                    self.events.preload_maybe(event, cursor.id)
                return

            elif node.kind == NodeKind.OR_FORK:
                legal = node.next_connection_refs(self.ucm, cursor.is_speculative)
                if len(legal) == 1:
                    if not self.cross(cursor, legal[0]):
                        return
                else:
                    self._speculate(cursor, legal, work)
                    return

            elif node.kind == NodeKind.AND_FORK:
                legal = node.next_connection_refs(self.ucm, cursor.is_speculative)
                if cursor.is_speculative:
                    self._speculate(cursor, legal, work)
                    return
                if not legal:
                    return
                spawned = []
                for connection_ref in legal[1:]:
                    guard = self.create_guard(cursor.node_ref, cursor.stub_stack, cursor.last_connection_ref)
                    self.cross(guard, connection_ref)
                    spawned.append(guard.id)
                if self.cross(cursor, legal[0]):
                    work.append(cursor.id)
                work.extend(reversed(spawned))
                return

            elif node.kind == NodeKind.AND_JOIN:
                if not self._arrive_at_join(cursor, node, work):
                    return

            else:
                legal = node.next_connection_refs(self.ucm, cursor.is_speculative)
                if not legal or not self.cross(cursor, legal[0]):
                    return

    def _speculate(self, cursor:Cursor, legal:List[ConnectionRef], work:List[int]) -> None:
        spawned = []
        for connection_ref in legal:
            child = self.spawn_speculative(cursor, connection_ref)
            if child is not None:
                spawned.append(child.id)
        work.extend(reversed(spawned))

    def _arrive_at_join(self, cursor:Cursor, node:Node, work:List[int]) -> bool:
        """ registers cursor at an AndJoin, returns True if it crossed it """
        state = self.ucm.join_state(node.ref)
        if state is None:
            return False
        state.add(cursor.id, cursor.last_connection_ref, cursor.is_speculative)

        legal = node.next_connection_refs(self.ucm, speculative=True)
        if not legal:
            return False

        if cursor.is_speculative or not node.next_connection_refs(self.ucm, speculative=False):
            # only a hypothetical pass, this cursor stays registered
            self._speculate(cursor, legal[:1], work)
            return False

        state.remove(cursor.id)
        if not self.cross(cursor, legal[0]):
            return False
        for attendee_id, (_, speculative) in list(state.attendees.items()):
            if not speculative:
                self.destroy(attendee_id)
        return True

    def on_event_call(self, cursor:Cursor) -> None:
        """ moves a cursor past the event it attends, which must be passable """
        node = self.ucm.node(cursor.node_ref)
        if node is None or node.kind != NodeKind.EVENT:
            self.logger.warning(f'{cursor} is not at an event')
            return
        event = self.events.get(node.event_id)
        if event is not None:
            self.events.unload_maybe(event, cursor.id)

        if cursor.is_speculative:
            self.follow_confirmed_path(cursor)
        else:
            legal = node.next_connection_refs(self.ucm)
            if legal:
                self.cross(cursor, legal[0])

    def follow_confirmed_path(self, cursor:Cursor) -> None:
        """ the called event confirms cursor's speculation, so its Guard walks
        the whole path from the Guard's position to cursor's event """

        path = list(cursor.path)
        ancestor = self.cursors[cursor.parent_id] if cursor.parent_id is not None else cursor
        while ancestor.is_speculative:
            node = self.ucm.node(ancestor.node_ref)
            if node is not None and node.kind == NodeKind.AND_JOIN:
                state = self.ucm.join_state(node.ref)
                if state is not None:
                    state.remove(ancestor.id)
            path = ancestor.path + path
            ancestor = self.cursors[ancestor.parent_id]  # type: ignore[index]

        guard = ancestor
        self.logger.debug(f'{guard} follows confirmed path of {cursor} ({len(path)} connections)')
        self._walk_path(guard, path)

        node = self.ucm.node(guard.node_ref)
        if node is not None and node.kind == NodeKind.EVENT:
            legal = node.next_connection_refs(self.ucm)
            if legal:
                self.cross(guard, legal[0])
        else:
            self.logger.warning(f'{guard} did not end its confirmed path at an event')

        self.destroy_children(guard)

    def _walk_path(self, guard:Cursor, path:List[ConnectionRef]) -> None:
        for connection_ref in path:
            node = self.ucm.node(guard.node_ref)
            if node is None:
                return

            if node.kind == NodeKind.AND_FORK:
                for sibling_ref in node.next_connection_refs(self.ucm):
                    if sibling_ref != connection_ref:
                        sibling = self.create_guard(guard.node_ref, guard.stub_stack, guard.last_connection_ref)
                        self.cross(sibling, sibling_ref)
            elif node.kind == NodeKind.AND_JOIN:
                self._dismiss_join(guard, node)
            elif node.kind == NodeKind.STUB:
                guard.stub_stack.append(guard.node_ref)
            elif node.kind == NodeKind.END and guard.stub_stack:
                guard.stub_stack.pop()

            if not self.cross(guard, connection_ref):
                return

    def _dismiss_join(self, guard:Cursor, node:Node) -> None:
        """ guard passes an AndJoin on a confirmed path: everyone else waiting
        there is moot """
        state = self.ucm.join_state(node.ref)
        if state is None:
            return
        state.remove(guard.id)
        for attendee_id, (_, speculative) in list(state.attendees.items()):
            attendee = self.cursors.get(attendee_id)
            if attendee is None:
                continue
            if not speculative:
                self.destroy(attendee_id)
                continue
            root = self.root(attendee)
            if root.id == guard.id:
                self.destroy(attendee_id)
            else:
                self.destroy(root.id)

    def advance_all_guards(self) -> None:
        """ trots every guard once, including guards created along the way,
        then destroys guards flagged for deletion """
        trotted:Set[int] = set()
        while True:
            pending = [g for g in self.guards if g not in trotted]
            if not pending:
                break
            for guard_id in pending:
                trotted.add(guard_id)
                guard = self.guards.get(guard_id)
                if guard is not None:
                    self.trot(guard)
        self.sweep()

    def sweep(self) -> None:
        for guard_id in [g for g, guard in self.guards.items() if guard.delete_me]:
            self.destroy(guard_id)

    def start(self, node_ref:NodeRef) -> Cursor:
        guard = self.create_guard(node_ref)
        self.trot(guard)
        return guard
