"""Tests for the memory engine: recording, recall, lifecycle and deletion."""

import json

import pytest

from convomem.models.core import MemoryType, Priority, UserProfile
from convomem.services.memory_management import InvalidIdentityError, MemoryManagementService
from convomem.utils.config import CacheConfig, MemoryConfig
from convomem.utils.record_store import InMemoryRecordStore

USER_ID = '3f2b8c1e-9a4d-4e6f-8b7a-1c2d3e4f5a6b'
OTHER_USER_ID = 'a1b2c3d4-e5f6-4a7b-8c9d-0e1f2a3b4c5d'
GUEST_ID = 'session-guest-1234'

DAY = 24 * 60 * 60


def build_engine(store, clock, **settings):
    return MemoryManagementService(store=store, memory_config=MemoryConfig(**settings), cache_config=CacheConfig(), clock=clock)


def stored_index(store, user_id=USER_ID):
    raw = store.get(f'semantic-index:{user_id}')
    return json.loads(raw) if raw else []


def conversation(turns):
    history = []
    for i in range(turns):
        history.append({'role': 'user' if i % 2 == 0 else 'assistant', 'content': f'turn number {i}'})
    return history


# ---- Identity gate ----


def test_guest_writes_leave_store_untouched(engine, store):
    assert engine.record_turn(GUEST_ID, 'sess-1', 'user', 'My name is Ahmed') is None
    assert engine.save_user_fact(GUEST_ID, 'name', 'Ahmed') is None
    assert engine.add_episodic_summary(GUEST_ID, 'sess-1', 'summary') is None
    assert engine.create_checkpoint(GUEST_ID, 'sess-1', conversation(12)) is None
    assert engine.capture_facts(GUEST_ID, 'My name is Ahmed') == {}
    assert engine.set_opt_out(GUEST_ID, True) is False
    assert engine.link_session_to_user('sess-1', GUEST_ID) is False
    assert engine.forget_last(GUEST_ID) is False
    assert engine.delete_all_user_memories(GUEST_ID) is True

    assert store.keys() == []


def test_guest_recall_is_short_term_only(engine):
    history = conversation(4)
    result = engine.recall(GUEST_ID, history, 'turn')
    assert result.short_term == history
    assert result.similar == []
    assert engine.get_user_profile(GUEST_ID) == UserProfile()


@pytest.mark.parametrize('call', [
    lambda e: e.record_turn(None, 'sess-1', 'user', 'hello'),
    lambda e: e.save_user_fact('', 'name', 'Ahmed'),
    lambda e: e.forget_last(123),
    lambda e: e.delete_all_user_memories(None),
    lambda e: e.consolidate_memories('   '),
])
def test_mutations_reject_missing_identity(engine, call):
    with pytest.raises(InvalidIdentityError):
        call(engine)


def test_session_ownership(engine):
    assert engine.link_session_to_user('sess-1', USER_ID) is True
    assert engine.get_user_id_for_session('sess-1') == USER_ID
    assert engine.get_user_id_for_session('unknown') is None


# ---- Recall ----


@pytest.mark.parametrize('turns,last_n,expected', [(15, 10, 10), (3, 10, 3), (5, 0, 0), (0, 10, 0)])
def test_short_term_window_length(engine, turns, last_n, expected):
    history = conversation(turns)
    result = engine.recall(USER_ID, history, 'anything', last_n=last_n)
    assert len(result.short_term) == expected
    assert result.short_term == history[len(history) - expected:]


def test_recall_finds_stored_name(engine):
    engine.save_user_fact(USER_ID, 'name', 'Ahmed', Priority.HIGH)

    result = engine.recall(USER_ID, [], 'what is my name?')

    assert [record.content for record in result.similar] == ['name: Ahmed']
    assert result.similar[0].type is MemoryType.FACT
    assert engine.get_user_profile(USER_ID).key_facts == {'name': 'Ahmed'}


def test_recall_ranks_and_limits(engine, clock):
    for i in range(6):
        clock.advance(1)
        engine.record_turn(USER_ID, 'sess-1', 'user', f'green tea idea {i}')
    engine.record_turn(USER_ID, 'sess-1', 'user', 'the weather is hot')

    result = engine.recall(USER_ID, [], 'green tea', top_k=3)

    assert len(result.similar) == 3
    assert all('tea' in record.content for record in result.similar)
    assert engine.recall(USER_ID, [], 'quantum physics').similar == []
    assert engine.recall(USER_ID, [], '').similar == []


def test_recall_sees_new_records_immediately(engine):
    engine.save_user_fact(USER_ID, 'drink', 'green tea')
    assert len(engine.recall(USER_ID, [], 'tea').similar) == 1

    engine.save_user_fact(USER_ID, 'shop', 'tea house')
    assert len(engine.recall(USER_ID, [], 'tea').similar) == 2


def test_recall_tracks_access(engine, store):
    record_id = engine.save_user_fact(USER_ID, 'name', 'Ahmed')
    engine.recall(USER_ID, [], 'name')

    stored = json.loads(store.get(f'semantic-record:{record_id}'))
    assert stored['access_count'] == 1


def test_recall_is_isolated_per_user(engine):
    engine.save_user_fact(USER_ID, 'name', 'Ahmed')
    assert engine.recall(OTHER_USER_ID, [], 'name').similar == []


def test_search_facts_ignores_conversation_turns(engine):
    engine.save_user_fact(USER_ID, 'name', 'Ahmed', Priority.HIGH)
    engine.save_user_fact(USER_ID, 'location', 'Karachi')
    engine.record_turn(USER_ID, 'sess-1', 'user', 'what a name for a cat')

    results = engine.search_facts(USER_ID, 'name')

    assert [record.content for record in results] == ['name: Ahmed']
    assert engine.search_facts(GUEST_ID, 'name') == []


# ---- Recording ----


def test_duplicate_turns_are_stored_once(engine, store):
    first = engine.record_turn(USER_ID, 'sess-1', 'user', 'I love green tea')
    second = engine.record_turn(USER_ID, 'sess-1', 'user', 'i love   GREEN tea')

    assert first is not None
    assert second is None
    assert stored_index(store) == [first]


def test_empty_turn_is_ignored(engine, store):
    assert engine.record_turn(USER_ID, 'sess-1', 'user', '   ') is None
    assert stored_index(store) == []


def test_session_history_is_bounded(engine):
    for i in range(25):
        engine.record_turn(USER_ID, 'sess-1', 'user' if i % 2 == 0 else 'assistant', f'message number {i}')

    history = engine.get_session_history('sess-1')
    assert len(history) == 20
    assert history[-1]['content'] == 'message number 24'
    assert history[0]['content'] == 'message number 5'


def test_index_keeps_newest_ids(store, clock):
    engine = build_engine(store, clock, index_capacity=3)
    ids = [engine.save_user_fact(USER_ID, f'fact{i}', f'value {i}') for i in range(5)]

    assert stored_index(store) == ids[2:]


def test_fact_last_write_wins(engine):
    engine.save_user_fact(USER_ID, 'name', 'Ahmed')
    engine.save_user_fact(USER_ID, 'name', 'Ali')
    assert engine.get_user_profile(USER_ID).key_facts['name'] == 'Ali'


def test_capture_facts_from_message(engine):
    saved = engine.capture_facts(USER_ID, 'My name is Ahmed and I live in Karachi')

    assert saved == {'name': 'Ahmed', 'location': 'Karachi'}
    assert engine.get_user_profile(USER_ID).key_facts == saved


def test_records_expire_with_store_ttl(engine, clock):
    engine.save_user_fact(USER_ID, 'name', 'Ahmed')
    clock.advance(31 * DAY)
    assert engine.recall(USER_ID, [], 'name').similar == []


# ---- Opt-out ----


def test_opt_out_blocks_all_writes(engine, store):
    assert engine.set_opt_out(USER_ID, True) is True

    assert engine.record_turn(USER_ID, 'sess-1', 'user', 'My name is Ahmed') is None
    assert engine.save_user_fact(USER_ID, 'name', 'Ahmed') is None
    assert engine.capture_facts(USER_ID, 'My name is Ahmed') == {}
    assert engine.get_user_profile(USER_ID).opt_out_memory is True
    assert store.keys('semantic-record:') == []

    assert engine.set_opt_out(USER_ID, False) is False
    assert engine.record_turn(USER_ID, 'sess-1', 'user', 'My name is Ahmed') is not None


# ---- Checkpoints ----


def test_tenth_turn_creates_checkpoint(engine, clock):
    for i in range(10):
        clock.advance(1)
        engine.record_turn(USER_ID, 'sess-1', 'user' if i % 2 == 0 else 'assistant', f'message number {i}')

    summaries = [record for record in engine.apply_decay(USER_ID) if record.type is MemoryType.EPISODIC_SUMMARY]

    assert len(summaries) == 1
    assert summaries[0].content.startswith('User discussed: message number 0; message number 2')
    assert ' | AI responded with: message number 1' in summaries[0].content
    assert summaries[0].metadata['session_id'] == 'sess-1'


def test_short_conversation_gets_no_checkpoint(engine):
    assert engine.create_checkpoint(USER_ID, 'sess-1', conversation(9)) is None
    assert engine.create_checkpoint(USER_ID, 'sess-1', conversation(10)) is not None


def test_old_summaries_are_pruned(store, clock):
    engine = build_engine(store, clock, checkpoint_threshold=2, summary_cap=2)
    for i in range(10):
        clock.advance(1)
        engine.record_turn(USER_ID, 'sess-1', 'user' if i % 2 == 0 else 'assistant', f'message number {i}')

    summaries = [record for record in engine.apply_decay(USER_ID) if record.type is MemoryType.EPISODIC_SUMMARY]

    assert len(summaries) == 2
    assert any('message number 8' in record.content for record in summaries)


# ---- Forget ----


def test_forget_last_on_empty_index(engine):
    assert engine.forget_last(USER_ID) is False


def test_forget_last_removes_newest_record(engine, store):
    keep = engine.save_user_fact(USER_ID, 'location', 'Karachi')
    doomed = engine.save_user_fact(USER_ID, 'name', 'Ahmed')

    assert engine.forget_last(USER_ID) is True
    assert stored_index(store) == [keep]
    assert store.get(f'semantic-record:{doomed}') is None
    assert engine.recall(USER_ID, [], 'name Ahmed').similar == []

    # The same content can be stored again once forgotten
    assert engine.save_user_fact(USER_ID, 'name', 'Ahmed') is not None


def test_delete_all_user_memories(engine, store):
    engine.save_user_fact(USER_ID, 'name', 'Ahmed')
    engine.record_turn(USER_ID, 'sess-1', 'user', 'I love green tea')
    engine.save_user_fact(OTHER_USER_ID, 'name', 'Sara')

    assert engine.delete_all_user_memories(USER_ID) is True

    assert store.get(f'semantic-index:{USER_ID}') is None
    assert store.get(f'user-profile:{USER_ID}') is None
    assert engine.get_user_profile(USER_ID) == UserProfile()
    assert engine.recall(USER_ID, [], 'tea name').similar == []
    assert len(stored_index(store, OTHER_USER_ID)) == 1
    assert engine.save_user_fact(USER_ID, 'name', 'Ahmed') is not None


# ---- Maintenance ----


def test_decay_by_priority(engine, store, clock):
    low = engine.save_user_fact(USER_ID, 'mood', 'sleepy', Priority.LOW)
    high = engine.save_user_fact(USER_ID, 'name', 'Ahmed', Priority.HIGH)
    clock.advance(8 * DAY)

    assert [record.id for record in engine.apply_decay(USER_ID)] == [high]
    assert stored_index(store) == [low, high]

    engine.apply_decay(USER_ID, purge=True)
    assert stored_index(store) == [high]
    assert store.get(f'semantic-record:{low}') is None


def test_consolidation_merges_once(engine, store):
    first = engine.record_turn(USER_ID, 'sess-1', 'user', 'I love green tea in the morning')
    other = engine.record_turn(USER_ID, 'sess-1', 'user', 'The weather in Karachi is hot')
    absorbed = engine.record_turn(USER_ID, 'sess-1', 'user', 'I love green tea in the evening')

    assert engine.consolidate_memories(USER_ID) == 1
    assert engine.consolidate_memories(USER_ID) == 0

    assert stored_index(store) == [first, other]
    survivor = json.loads(store.get(f'semantic-record:{first}'))
    assert survivor['merged_from'] == [first, absorbed]
    assert store.get(f'semantic-record:{absorbed}') is None


# ---- Degraded store ----


def test_unreachable_store_degrades_quietly(failing_store, clock):
    engine = build_engine(failing_store, clock)
    history = conversation(3)

    result = engine.recall(USER_ID, history, 'name')
    assert result.short_term == history
    assert result.similar == []
    assert engine.record_turn(USER_ID, 'sess-1', 'user', 'hello there') is None
    assert engine.save_user_fact(USER_ID, 'name', 'Ahmed') is None
    assert engine.set_opt_out(USER_ID, True) is False
    assert engine.get_user_profile(USER_ID) == UserProfile()
    assert engine.forget_last(USER_ID) is False
    assert engine.delete_all_user_memories(USER_ID) is False
    assert engine.consolidate_memories(USER_ID) == 0
    assert failing_store.calls > 0


def test_malformed_records_are_skipped(engine, store):
    broken = engine.save_user_fact(USER_ID, 'name', 'Ahmed')
    half = engine.save_user_fact(USER_ID, 'city', 'Lahore')
    engine.save_user_fact(USER_ID, 'location', 'Karachi')
    store.put(f'semantic-record:{broken}', '{not json')
    store.put(f'semantic-record:{half}', '{"id": "x"}')

    result = engine.recall(USER_ID, [], 'name city location')

    assert [record.content for record in result.similar] == ['location: Karachi']


def test_malformed_index_reads_as_empty(store, clock):
    build_engine(store, clock).save_user_fact(USER_ID, 'name', 'Ahmed')
    store.put(f'semantic-index:{USER_ID}', '[broken')

    fresh = build_engine(store, clock)
    assert fresh.recall(USER_ID, [], 'name').similar == []
    assert fresh.forget_last(USER_ID) is False


def test_engine_works_with_default_construction(store):
    engine = MemoryManagementService(store=store)
    assert isinstance(engine.store, InMemoryRecordStore)
    assert engine.recall(USER_ID, [], 'hello').similar == []


class CountingStore(InMemoryRecordStore):

    def __init__(self, clock):
        super().__init__(clock=clock)
        self.reads = 0

    def get(self, key):
        self.reads += 1
        return super().get(key)


def test_repeated_recall_is_served_from_cache(clock):
    store = CountingStore(clock)
    engine = build_engine(store, clock)
    engine.save_user_fact(USER_ID, 'name', 'Ahmed')

    first = engine.recall(USER_ID, [], 'name')
    reads = store.reads
    second = engine.recall(USER_ID, conversation(2), 'NAME')

    assert store.reads == reads
    assert [record.id for record in second.similar] == [record.id for record in first.similar]
    assert len(second.short_term) == 2

    clock.advance(6)
    engine.recall(USER_ID, [], 'name')
    assert store.reads > reads


def test_search_facts_prefers_higher_priority(engine):
    engine.save_user_fact(USER_ID, 'drink', 'green tea', Priority.LOW)
    engine.save_user_fact(USER_ID, 'snack', 'black tea', Priority.HIGH)

    results = engine.search_facts(USER_ID, 'tea')

    assert [record.content for record in results] == ['snack: black tea', 'drink: green tea']


def summaries_of(engine, user_id=USER_ID):
    return [record.content for record in engine.apply_decay(user_id) if record.type is MemoryType.EPISODIC_SUMMARY]


def test_delete_all_clears_session_history(engine, store):
    engine.link_session_to_user('sess-1', USER_ID)
    for i in range(9):
        engine.record_turn(USER_ID, 'sess-1', 'user' if i % 2 == 0 else 'assistant', f'secret detail {i}')

    assert engine.delete_all_user_memories(USER_ID) is True
    assert store.get('session-index:sess-1') is None
    assert engine.get_user_id_for_session('sess-1') is None

    engine.record_turn(USER_ID, 'sess-1', 'user', 'fresh start')
    assert engine.get_session_history('sess-1')[0]['content'] == 'fresh start'
    assert not any('secret' in summary for summary in summaries_of(engine))


def test_delete_all_keeps_other_users_session_links(engine):
    engine.link_session_to_user('sess-2', OTHER_USER_ID)
    engine.record_turn(USER_ID, 'sess-2', 'user', 'shared kiosk session')

    engine.delete_all_user_memories(USER_ID)

    assert engine.get_user_id_for_session('sess-2') == OTHER_USER_ID


def test_forgotten_turn_is_dropped_from_session_history(engine, clock):
    for i in range(9):
        clock.advance(1)
        engine.record_turn(USER_ID, 'sess-1', 'user' if i % 2 == 0 else 'assistant', f'message number {i}')

    assert engine.forget_last(USER_ID) is True
    assert 'message number 8' not in [turn['content'] for turn in engine.get_session_history('sess-1')]

    for i in (9, 10):
        clock.advance(1)
        engine.record_turn(USER_ID, 'sess-1', 'assistant' if i % 2 else 'user', f'message number {i}')

    summaries = summaries_of(engine)
    assert len(summaries) == 1
    assert 'message number 8' not in summaries[0]
    assert 'message number 10' in summaries[0]


def test_forgetting_a_fact_leaves_session_history_alone(engine):
    engine.record_turn(USER_ID, 'sess-1', 'user', 'name: Ahmed')
    engine.save_user_fact(USER_ID, 'name', 'Ali')

    assert engine.forget_last(USER_ID) is True
    assert [turn['content'] for turn in engine.get_session_history('sess-1')] == ['name: Ahmed']


def test_identity_with_trailing_newline_is_a_guest(engine, store):
    assert engine.save_user_fact(USER_ID + '\n', 'name', 'Ahmed') is None
    assert engine.record_turn(USER_ID + '\n', 'sess-1', 'user', 'hello there') is None
    assert store.keys() == []


def test_capture_preferences(engine):
    saved = engine.capture_facts(USER_ID, 'I follow the Hanafi school, please answer in detail')

    assert saved == {'response_style': 'detailed', 'school': 'hanafi'}
    profile = engine.get_user_profile(USER_ID)
    assert profile.preferences == {'response_style': 'detailed', 'school': 'hanafi'}
    assert profile.key_facts == {}

    preferences = [record for record in engine.apply_decay(USER_ID) if record.type is MemoryType.PREFERENCE]
    assert sorted(record.content for record in preferences) == ['response_style: detailed', 'school: hanafi']


def test_preference_last_write_wins_and_is_searchable(engine):
    engine.save_user_preference(USER_ID, 'response_style', 'detailed')
    engine.save_user_preference(USER_ID, 'response_style', 'brief')

    assert engine.get_user_profile(USER_ID).preferences == {'response_style': 'brief'}
    results = engine.search_facts(USER_ID, 'response style')
    assert {record.content for record in results} == {'response_style: detailed', 'response_style: brief'}
    assert all(record.type is MemoryType.PREFERENCE for record in results)


def test_guest_and_opted_out_preferences_are_not_saved(engine, store):
    assert engine.save_user_preference(GUEST_ID, 'response_style', 'brief') is None
    engine.set_opt_out(USER_ID, True)
    assert engine.save_user_preference(USER_ID, 'response_style', 'brief') is None
    assert engine.get_user_profile(USER_ID).preferences == {}
    assert store.keys('semantic-record:') == []


def test_search_facts_prunes_large_sets_to_related_clusters(engine):
    for i in range(6):
        engine.save_user_fact(USER_ID, f'drink{i}', f'green tea blend {i}')
        engine.save_user_fact(USER_ID, f'city{i}', f'weather hot {i}')

    results = engine.search_facts(USER_ID, 'green tea', limit=4)

    assert len(results) == 4
    assert all('green tea' in record.content for record in results)


def test_cached_recall_still_counts_access(engine, store):
    record_id = engine.save_user_fact(USER_ID, 'name', 'Ahmed')
    engine.recall(USER_ID, [], 'name')
    engine.recall(USER_ID, [], 'name')

    stored = json.loads(store.get(f'semantic-record:{record_id}'))
    assert stored['access_count'] == 2
