"""Update records, their de-duplication, mapping and broadcast to subscribers."""