"""
Rank report for the person rank crawler.
Lists the pages most relevant to a tracked person.
"""


def format_ranks_for_cli(person_id, person_name, ranks):
    """Format (url, rank) pairs for command-line display."""
    label = person_name or f"person {person_id}"
    if not ranks:
        return f"No ranked pages for {label} (id={person_id})"

    output = [f"Top pages for {label} (id={person_id}):"]
    output.append("-" * 80)
    for i, (url, rank) in enumerate(ranks, 1):
        output.append(f"{i}. {url} (Rank: {rank})")
    output.append("-" * 80)
    return "\n".join(output)


def top_pages_report(page_store, person_id, limit=10):
    ranks = page_store.get_top_pages(person_id, limit)
    return format_ranks_for_cli(person_id, page_store.get_person_name(person_id), ranks)
