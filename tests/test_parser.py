from trip_planner.parser import (
    CapitalizedPhraseExtractor,
    ItineraryParser,
    clamp_distance,
    extract_day_details,
    split_day_sections,
)


THREE_DAYS = """Here is your itinerary!

Day 1:
From Paris to Lyon
Total Distance: 450 km
Estimated Duration: 5 hours
Eiffel Tower
Louvre
Day 2:
From Lyon to Annecy
Total Distance: 140 km
Estimated Duration: 2 hours
Lake Annecy
Palais de l'Isle
Day 3:
From Annecy to Chamonix
Total Distance: 95 km
Estimated Duration: 1.5 hours
Mont Blanc
Aiguille du Midi
"""


def _parse(text: str, trip_type: str = "car", country: str = "France"):
    return ItineraryParser().parse(text, country, trip_type)


def test_three_days_in_order():
    routes = _parse(THREE_DAYS)
    assert len(routes) == 3
    assert [r.index for r in routes] == [1, 2, 3]


def test_scenario_a_first_day():
    day1 = _parse(THREE_DAYS)[0]
    assert day1.distance_km == 300
    assert day1.start_place == "Paris"
    assert day1.end_place == "Lyon"
    assert day1.description == "From Paris to Lyon"
    assert day1.duration == "5 hours"
    assert day1.points_of_interest == ["Eiffel Tower", "Louvre"]
    assert day1.name == "France - Day 1 Route"


def test_continuity_between_days():
    routes = _parse(THREE_DAYS)
    for prev, nxt in zip(routes, routes[1:]):
        assert prev.end_place == nxt.start_place
    assert routes[-1].end_place == "Chamonix"


def test_start_follows_previous_end_even_if_text_disagrees():
    text = "Day 1:\nFrom Paris to Lyon\nDay 2:\nFrom Dijon to Beaune\n"
    routes = _parse(text)
    assert routes[1].start_place == "Lyon"
    assert routes[1].end_place == "Beaune"


def test_bicycle_distances_capped():
    routes = _parse(THREE_DAYS, trip_type="bicycle")
    assert all(r.distance_km <= 80 for r in routes)
    assert [r.distance_km for r in routes] == [80, 80, 80]


def test_car_distances_within_bounds():
    text = THREE_DAYS.replace("95 km", "20 km")
    routes = _parse(text, trip_type="car")
    assert all(80 <= r.distance_km <= 300 for r in routes)
    assert routes[2].distance_km == 80


def test_clamp_distance_bounds():
    assert clamp_distance(0, "bicycle") == 0
    assert clamp_distance(45, "bicycle") == 45
    assert clamp_distance(120, "bicycle") == 80
    assert clamp_distance(0, "car") == 80
    assert clamp_distance(200, "car") == 200
    assert clamp_distance(1000, "car") == 300


def test_no_day_sections_returns_empty_list():
    assert _parse("I'm sorry, I can't help with that.") == []
    assert _parse("") == []


def test_block_without_details_degrades():
    routes = _parse("Day 1:\nA relaxing day around Bordeaux\nDay 2:\n\n", trip_type="bicycle")
    assert len(routes) == 2
    day1, day2 = routes
    assert day1.distance_km == 0
    assert day1.duration is None
    assert day1.points_of_interest == []
    assert day1.start_place == "Bordeaux"
    assert day2.description == ""
    assert day2.start_place == "Bordeaux"
    assert day2.end_place == "France"


def test_description_without_places_falls_back_to_country():
    routes = _parse("Day 1:\nan easy loop along the coast\nTotal Distance: 40 km\n", trip_type="bicycle")
    assert routes[0].start_place == "France"
    assert routes[0].end_place == "France"
    assert routes[0].distance_km == 40


def test_degenerate_start_and_end_uses_second_location():
    text = "Day 1:\nFrom Paris to Lyon\nDay 2:\nLyon and Annecy then back to Lyon\n"
    routes = _parse(text)
    assert routes[1].start_place == "Lyon"
    assert routes[1].end_place == "Annecy"


def test_distance_in_miles_and_missing_number():
    details = extract_day_details("\nFrom Bath to Oxford\nTotal Distance: 70 miles\nDistance in km unknown\n")
    assert details.distance == 70
    details = extract_day_details("\nFrom Bath to Oxford\nDistance: some km\n")
    assert details.distance == 0


def test_unit_attached_to_number():
    details = extract_day_details("\nFrom Paris to Lyon\nTotal Distance: 450km\nLouvre\n")
    assert details.distance == 450
    assert details.points_of_interest == ["Louvre"]

    [route] = _parse("Day 1:\nFrom Paris to Lyon\nTotal Distance: 450km\nLouvre\n")
    assert route.distance_km == 300


def test_duration_without_colon_is_none():
    details = extract_day_details("\nFrom Bath to Oxford\nDuration around 3 hours\nRadcliffe Camera\n")
    assert details.duration is None
    assert details.points_of_interest == ["Radcliffe Camera"]


def test_points_of_interest_strip_bullets_and_markdown():
    text = "**Day 1:**\n**From Rome to Florence**\nTotal Distance: 280 km\n- Colosseum\n2. Uffizi Gallery\n"
    routes = _parse(text, country="Italy")
    assert routes[0].description == "From Rome to Florence"
    assert routes[0].points_of_interest == ["Colosseum", "Uffizi Gallery"]
    assert routes[0].start_place == "Rome"


def test_split_ignores_preamble_and_is_case_insensitive():
    blocks = split_day_sections("intro\nday 1: one\nDAY 2: two")
    assert [b.strip() for b in blocks] == ["one", "two"]


def test_extractor_groups_multi_word_and_hyphenated_names():
    extractor = CapitalizedPhraseExtractor()
    assert extractor.extract_locations("From Mont Saint Michel to Saint-Malo") == [
        "Mont Saint Michel",
        "Saint-Malo",
    ]
    assert extractor.extract_locations("Drive from Paris, France to Reims") == ["Paris", "France", "Reims"]


def test_custom_extractor_is_used():
    class FixedExtractor:
        def extract_locations(self, text):
            return ["Nice", "Monaco"]

    routes = ItineraryParser(FixedExtractor()).parse("Day 1:\nwhatever\n", "France", "car")
    assert routes[0].start_place == "Nice"
    assert routes[0].end_place == "Monaco"
