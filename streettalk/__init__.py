"""Client-side core of the StreetTalk social app: write rate limiting and feed paging."""
