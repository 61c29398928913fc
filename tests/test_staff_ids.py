from checkin_service.utils.ids import is_staff_id, next_staff_id


def test_first_id_when_store_is_empty():
    assert next_staff_id([]) == 'FG0001'


def test_next_id_follows_highest_number():
    assert next_staff_id(['FG0001', 'FG0007', 'FG0003']) == 'FG0008'


def test_non_digits_are_stripped_and_digitless_ids_ignored():
    assert next_staff_id(['AB12', 'garbage']) == 'FG0013'


def test_ids_grow_past_four_digits():
    assert next_staff_id(['FG9999']) == 'FG10000'


def test_custom_prefix():
    assert next_staff_id(['WH0041'], prefix='WH') == 'WH0042'


def test_is_staff_id():
    assert is_staff_id('FG0001')
    assert is_staff_id('FG12345')
    assert not is_staff_id('FG01')
    assert not is_staff_id('Generating...')
    assert not is_staff_id('')
